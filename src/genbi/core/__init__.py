"""
GenBI Core.

Shared infrastructure with no knowledge of threads or trackers:
- table_store / supabase_client: row storage backends
- repository: typed repositories over a table store
- project / mdl: the served project and its manifest
- query_service: SQL previews through the query engine
"""
