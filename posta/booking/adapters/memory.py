class InMemoryStorage:
    """Dict-backed implementation of the KeyValueStorage protocol.

    Suitable for tests and single-process use.  Set ``get_error`` or
    ``set_error`` to make the corresponding method raise on every call.

    ``writes`` counts successful ``set`` calls so tests can verify that a
    rejected operation left storage untouched.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.writes: int = 0

        self.get_error: Exception | None = None
        self.set_error: Exception | None = None

    def get(self, key: str) -> str | None:
        if self.get_error:
            raise self.get_error
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.set_error:
            raise self.set_error
        self.data[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        self.data.pop(key, None)
