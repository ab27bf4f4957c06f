"""JSON schemas for catalog-merge configuration files.

- catalog_config.schema.json: run configuration (input, files, store, merge, export)
"""
