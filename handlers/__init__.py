"""
Entity handlers

One module per entity family. Every handler takes the database handle
explicitly, validates its input into a command, and returns an enveloped
JSONResponse; failures never escape a handler.
"""
