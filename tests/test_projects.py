import pytest
from httpx import AsyncClient

from tests.test_tags import create_tag


async def create_project(client: AsyncClient, headers, **fields):
    body = {"name": "Portfolio", **fields}
    return await client.post("/api/admin/projects", json=body, headers=headers)


async def test_project_tags_resolve_by_name(client: AsyncClient, admin_headers):
    tag = (await create_tag(client, admin_headers, "react", "#61dafb")).json()["data"]["tag"]

    response = await create_project(client, admin_headers, name="Site", tags=["REACT", " react "])

    assert response.status_code == 201
    project = response.json()["data"]["project"]
    assert project["tags"] == [{"id": tag["id"], "name": "react", "color": "#61dafb"}]


async def test_unknown_tag_rejects_the_whole_write(client: AsyncClient, db, admin_headers):
    await create_tag(client, admin_headers, "react")

    response = await create_project(client, admin_headers, tags=["react", "nonexistent"])

    assert response.status_code == 400
    assert response.json()["message"] == "Tags not found: nonexistent"
    assert await db["project"].count_documents({}) == 0


async def test_create_project_defaults(client: AsyncClient, admin_headers):
    response = await create_project(client, admin_headers, stack=[" FastAPI ", "FastAPI", "", "Mongo"])

    project = response.json()["data"]["project"]
    assert project["stack"] == ["FastAPI", "Mongo"]
    assert project["tags"] == []
    assert project["imageUrl"] == ""


async def test_create_project_requires_name(client: AsyncClient, admin_headers):
    response = await client.post("/api/admin/projects", json={"stack": []}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "name is required"


@pytest.mark.parametrize("field", ["stack", "tags"])
async def test_create_project_requires_arrays(client: AsyncClient, admin_headers, field):
    response = await create_project(client, admin_headers, **{field: "react"})
    assert response.status_code == 400
    assert response.json()["message"] == f"{field} must be an array of strings"


async def test_image_url_is_normalized(client: AsyncClient, admin_headers):
    response = await create_project(client, admin_headers, imageUrl="HTTPS://cdn.example.com")
    assert response.json()["data"]["project"]["imageUrl"] == "https://cdn.example.com/"


@pytest.mark.parametrize("url", ["ftp://example.com/a.png", "not a url", "https://"])
async def test_image_url_rejects_other_schemes(client: AsyncClient, admin_headers, url):
    response = await create_project(client, admin_headers, imageUrl=url)
    assert response.status_code == 400
    assert response.json()["message"] == "imageUrl must be a valid http/https url"


async def test_update_project_clears_image_url(client: AsyncClient, admin_headers):
    created = await create_project(client, admin_headers, imageUrl="https://example.com/a.png")
    project_id = created.json()["data"]["project"]["id"]

    response = await client.patch(f"/api/admin/projects/{project_id}", json={"imageUrl": ""}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["project"]["imageUrl"] == ""


async def test_update_project_replaces_tags(client: AsyncClient, admin_headers):
    await create_tag(client, admin_headers, "react")
    await create_tag(client, admin_headers, "vue")
    created = await create_project(client, admin_headers, tags=["react"])
    project_id = created.json()["data"]["project"]["id"]

    response = await client.patch(f"/api/admin/projects/{project_id}", json={"tags": ["vue"]}, headers=admin_headers)

    project = response.json()["data"]["project"]
    assert [tag["name"] for tag in project["tags"]] == ["vue"]
    assert project["name"] == "Portfolio"


async def test_update_project_with_unknown_tag_changes_nothing(client: AsyncClient, admin_headers):
    await create_tag(client, admin_headers, "react")
    created = await create_project(client, admin_headers, tags=["react"])
    project_id = created.json()["data"]["project"]["id"]

    response = await client.patch(
        f"/api/admin/projects/{project_id}", json={"name": "Renamed", "tags": ["ghost"]}, headers=admin_headers
    )
    assert response.status_code == 400

    project = (await client.get(f"/api/projects/{project_id}")).json()["data"]["project"]
    assert project["name"] == "Portfolio"
    assert [tag["name"] for tag in project["tags"]] == ["react"]


async def test_update_project_nothing_to_update(client: AsyncClient, admin_headers):
    project_id = (await create_project(client, admin_headers)).json()["data"]["project"]["id"]
    response = await client.patch(f"/api/admin/projects/{project_id}", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Nothing to update"


async def test_get_project_public(client: AsyncClient, admin_headers):
    project_id = (await create_project(client, admin_headers)).json()["data"]["project"]["id"]

    response = await client.get(f"/api/projects/{project_id}")
    assert response.status_code == 200
    assert response.json()["data"]["project"]["id"] == project_id

    response = await client.get("/api/projects/65f0c0ffee0000000000abcd")
    assert response.status_code == 404

    response = await client.get("/api/projects/nope")
    assert response.json()["message"] == "Invalid project id"


async def test_deleted_tag_is_dropped_from_projects(client: AsyncClient, db, admin_headers):
    tag_id = (await create_tag(client, admin_headers, "react")).json()["data"]["tag"]["id"]
    project_id = (await create_project(client, admin_headers, tags=["react"])).json()["data"]["project"]["id"]

    await client.delete(f"/api/admin/tags/{tag_id}", headers=admin_headers)

    project = (await client.get(f"/api/projects/{project_id}")).json()["data"]["project"]
    assert project["tags"] == []
    stored = await db["project"].find_one({})
    assert len(stored["tags"]) == 1


async def test_list_projects_filters_by_tag_id_or_name(client: AsyncClient, admin_headers):
    tag_id = (await create_tag(client, admin_headers, "react")).json()["data"]["tag"]["id"]
    await create_project(client, admin_headers, name="With tag", tags=["react"])
    await create_project(client, admin_headers, name="Without tag")

    by_id = (await client.get(f"/api/projects?tag={tag_id}")).json()["data"]
    by_name = (await client.get("/api/projects?tag=React")).json()["data"]
    unknown = (await client.get("/api/projects?tag=angular")).json()["data"]

    assert [p["name"] for p in by_id["items"]] == ["With tag"]
    assert [p["name"] for p in by_name["items"]] == ["With tag"]
    assert unknown["items"] == []
    assert unknown["pagination"]["total"] == 0


async def test_list_projects_search(client: AsyncClient, admin_headers):
    await create_tag(client, admin_headers, "graphql")
    await create_project(client, admin_headers, name="Shop", stack=["Django"])
    await create_project(client, admin_headers, name="Blog", description="Static site built with Hugo")
    await create_project(client, admin_headers, name="Api", tags=["graphql"])

    async def names(term):
        response = await client.get("/api/projects", params={"search": term})
        return sorted(p["name"] for p in response.json()["data"]["items"])

    assert await names("django") == ["Shop"]
    assert await names("HUGO") == ["Blog"]
    assert await names("graph") == ["Api"]


async def test_list_projects_paginates(client: AsyncClient, admin_headers):
    for i in range(3):
        await create_project(client, admin_headers, name=f"Project {i}")

    data = (await client.get("/api/projects?page=2&limit=2")).json()["data"]

    assert [p["name"] for p in data["items"]] == ["Project 0"]
    assert data["pagination"] == {
        "page": 2, "limit": 2, "total": 3, "totalPages": 2, "hasNext": False, "hasPrev": True,
    }


async def test_empty_list_reports_one_page(client: AsyncClient):
    data = (await client.get("/api/projects")).json()["data"]
    assert data["pagination"]["totalPages"] == 1
    assert data["pagination"]["hasNext"] is False


async def test_delete_project(client: AsyncClient, admin_headers):
    project_id = (await create_project(client, admin_headers)).json()["data"]["project"]["id"]

    response = await client.delete(f"/api/admin/projects/{project_id}", headers=admin_headers)
    assert response.json()["data"] == {"deletedProjectId": project_id}

    response = await client.get(f"/api/projects/{project_id}")
    assert response.status_code == 404


async def test_project_writes_are_admin_only(client: AsyncClient, user_headers):
    response = await create_project(client, user_headers)
    assert response.status_code == 403


async def test_blank_search_falls_back_to_q(client: AsyncClient, admin_headers):
    await create_project(client, admin_headers, name="Alpha")
    await create_project(client, admin_headers, name="Beta")

    data = (await client.get("/api/projects", params={"search": " ", "q": "alpha"})).json()["data"]

    assert [p["name"] for p in data["items"]] == ["Alpha"]


async def test_huge_page_is_an_empty_page(client: AsyncClient, admin_headers):
    await create_project(client, admin_headers)

    response = await client.get("/api/projects?page=99999999999999999999&limit=100")

    assert response.status_code == 200
    assert response.json()["data"]["items"] == []
