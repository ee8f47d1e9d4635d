"""Transport bookkeeping backend: CRUD API, storage backends and reports."""
