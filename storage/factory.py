from .sqlite_backend import SQLiteBackend

BACKENDS = {"sqlite": SQLiteBackend}


def get_storage_backend(db_type="sqlite", **kwargs):
    """Build an unconnected backend by name; call connect() before use."""
    try:
        backend_cls = BACKENDS[db_type.lower()]
    except KeyError:
        supported = ", ".join(sorted(BACKENDS))
        raise ValueError(f"Unsupported DB type: {db_type} (supported: {supported})") from None
    return backend_cls(**kwargs)
