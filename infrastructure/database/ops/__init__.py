"""SQL mixins composed into SQLiteDatabaseHandler."""
