class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class CallCounter:
    """Wraps an async backend method and records the table and arguments of every call."""

    def __init__(self, func):
        self.func = func
        self.calls = []

    async def __call__(self, table, *args, **kwargs):
        self.calls.append({"table": table, "args": args, **kwargs})
        return await self.func(table, *args, **kwargs)

    def count(self, table=None):
        return len([call for call in self.calls if table is None or call["table"] == table])
