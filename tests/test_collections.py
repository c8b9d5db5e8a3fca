from httpx import AsyncClient

from tests.test_projects import create_project
from tests.test_tags import create_tag

MISSING_ID = "65f0c0ffee0000000000abcd"


async def create_collection(client: AsyncClient, headers, **fields):
    body = {"name": "Favourites", **fields}
    return await client.post("/api/admin/collections", json=body, headers=headers)


async def project_id(client: AsyncClient, headers, name: str = "Portfolio", **fields) -> str:
    response = await create_project(client, headers, name=name, **fields)
    return response.json()["data"]["project"]["id"]


async def test_create_collection_expands_projects(client: AsyncClient, admin_headers):
    await create_tag(client, admin_headers, "react")
    pid = await project_id(client, admin_headers, tags=["react"])

    response = await create_collection(client, admin_headers, projects=[pid, pid], description="  Best work ")

    assert response.status_code == 201
    collection = response.json()["data"]["collection"]
    assert collection["description"] == "Best work"
    assert collection["projectsCount"] == 1
    assert [p["id"] for p in collection["projects"]] == [pid]
    assert collection["projects"][0]["tags"][0]["name"] == "react"


async def test_create_collection_with_unknown_project(client: AsyncClient, db, admin_headers):
    pid = await project_id(client, admin_headers)

    response = await create_collection(client, admin_headers, projects=[pid, MISSING_ID])

    assert response.status_code == 400
    assert response.json()["message"] == f"Projects not found: {MISSING_ID}"
    assert await db["projectcollection"].count_documents({}) == 0


async def test_create_collection_with_malformed_project_id(client: AsyncClient, admin_headers):
    response = await create_collection(client, admin_headers, projects=["abc"])
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid project ids: abc"

    response = await create_collection(client, admin_headers, projects="abc")
    assert response.json()["message"] == "projects must be an array"


async def test_collection_names_are_unique_ignoring_case(client: AsyncClient, admin_headers):
    await create_collection(client, admin_headers, name="Favourites")
    response = await create_collection(client, admin_headers, name="FAVOURITES")
    assert response.status_code == 409
    assert response.json()["message"] == "Collection with this name already exists"


async def test_update_collection(client: AsyncClient, admin_headers):
    first = await project_id(client, admin_headers, name="First")
    second = await project_id(client, admin_headers, name="Second")
    cid = (await create_collection(client, admin_headers, projects=[first])).json()["data"]["collection"]["id"]

    response = await client.patch(
        f"/api/admin/collections/{cid}",
        json={"name": "favourites", "projects": [second, first]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    collection = response.json()["data"]["collection"]
    assert collection["name"] == "favourites"
    assert [p["name"] for p in collection["projects"]] == ["Second", "First"]


async def test_update_collection_name_conflict(client: AsyncClient, admin_headers):
    await create_collection(client, admin_headers, name="Web")
    cid = (await create_collection(client, admin_headers, name="Mobile")).json()["data"]["collection"]["id"]

    response = await client.patch(f"/api/admin/collections/{cid}", json={"name": "WEB"}, headers=admin_headers)
    assert response.status_code == 409


async def test_update_collection_nothing_to_update(client: AsyncClient, admin_headers):
    cid = (await create_collection(client, admin_headers)).json()["data"]["collection"]["id"]
    response = await client.patch(f"/api/admin/collections/{cid}", json={}, headers=admin_headers)
    assert response.json()["message"] == "Nothing to update"


async def test_deleted_project_is_dropped_from_collection(client: AsyncClient, admin_headers):
    pid = await project_id(client, admin_headers)
    cid = (await create_collection(client, admin_headers, projects=[pid])).json()["data"]["collection"]["id"]

    await client.delete(f"/api/admin/projects/{pid}", headers=admin_headers)

    response = await client.get(f"/api/collections/{cid}")
    assert response.status_code == 200
    assert response.json()["data"]["collection"]["projects"] == []


async def test_public_list_and_search(client: AsyncClient, admin_headers):
    pid = await project_id(client, admin_headers)
    await create_collection(client, admin_headers, name="Web apps", projects=[pid])
    await create_collection(client, admin_headers, name="Games")

    everything = (await client.get("/api/collections")).json()["data"]
    searched = (await client.get("/api/collections?q=WEB")).json()["data"]

    assert [c["name"] for c in everything["items"]] == ["Games", "Web apps"]
    assert [c["name"] for c in searched["items"]] == ["Web apps"]
    assert "description" in searched["items"][0]["projects"][0]


async def test_admin_list_uses_project_summaries(client: AsyncClient, admin_headers):
    pid = await project_id(client, admin_headers, description="long text")
    await create_collection(client, admin_headers, projects=[pid])

    data = (await client.get("/api/admin/collections", headers=admin_headers)).json()["data"]

    assert data["pagination"]["limit"] == 20
    summary = data["items"][0]["projects"][0]
    assert summary["id"] == pid
    assert "description" not in summary


async def test_get_collection_unknown_and_malformed(client: AsyncClient):
    assert (await client.get(f"/api/collections/{MISSING_ID}")).status_code == 404
    response = await client.get("/api/collections/xyz")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid collection id"


async def test_delete_collection(client: AsyncClient, admin_headers):
    cid = (await create_collection(client, admin_headers)).json()["data"]["collection"]["id"]

    response = await client.delete(f"/api/admin/collections/{cid}", headers=admin_headers)
    assert response.json()["data"] == {"deletedCollectionId": cid}

    response = await client.delete(f"/api/admin/collections/{cid}", headers=admin_headers)
    assert response.status_code == 404
