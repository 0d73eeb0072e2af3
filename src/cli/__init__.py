"""pg-provision command line interface.

The typer application lives in ``src.cli.main``:

- configure: apply a configuration record to the host
- show-config: print the persisted configuration record
- create-credential: create a role, its database and its pooler entry
- backup / list-backups / restore: backup lifecycle
- status / restart: service health and restart
"""
