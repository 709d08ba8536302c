"""
Shared test fixtures for the Data Pump scripts.

Provides: FakeCursor, a scripted stand-in for an oracledb cursor, and helpers
to build oracledb errors carrying an ORA code. No database is needed.
"""

from types import SimpleNamespace

import oracledb
import pytest


class FakeVar:
    """Mimics the getvalue/setvalue part of oracledb.Var."""

    def __init__(self, value=None):
        self.value = value

    def getvalue(self, pos=0):
        return self.value

    def setvalue(self, pos, value):
        self.value = value


class FakeCursor:
    """Records every execute() and answers from scripted results.

    results:  {substring of SQL: [rows for 1st call, rows for 2nd call, ...]}
              the last row set is reused once the others are consumed
    statuses: GET_STATUS answers in order, each (state, percent_done or None,
              [error lines]) or an exception to raise
    errors:   {substring of SQL: exception raised on every matching call}
    """

    def __init__(self, results=None, statuses=None, errors=None, handle=101):
        self.results = {needle: list(sets) for needle, sets in (results or {}).items()}
        self.statuses = list(statuses or [])
        self.errors = dict(errors or {})
        self.handle = handle
        self.executed = []
        self._rows = []

    def var(self, typ, size=None):
        return FakeVar()

    def execute(self, statement, parameters=None, **kwargs):
        binds = dict(parameters or {}, **kwargs)
        self.executed.append((statement, binds))
        self._rows = []

        for needle, exc in self.errors.items():
            if needle in statement:
                raise exc

        if "DBMS_DATAPUMP.OPEN" in statement or "DBMS_DATAPUMP.ATTACH" in statement:
            binds["handle"].setvalue(0, self.handle)
        elif "DBMS_DATAPUMP.GET_STATUS" in statement:
            status = self.statuses.pop(0)
            if isinstance(status, Exception):
                raise status
            state, percent_done, error_lines = status
            binds["job_state"].setvalue(0, state)
            binds["has_status"].setvalue(0, 0 if percent_done is None else 1)
            binds["percent_done"].setvalue(0, percent_done)
            binds["errors"].setvalue(0, "\n".join(error_lines) or None)

        for needle, sets in self.results.items():
            if needle in statement:
                rows = sets.pop(0) if len(sets) > 1 else sets[0]
                self._rows = list(rows)
                break

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def calls(self, needle):
        """Bind dicts of every executed statement containing needle."""
        return [binds for statement, binds in self.executed if needle in statement]

    def statements(self, needle):
        return [statement for statement, _ in self.executed if needle in statement]


def ora_error(code, message="", cls=oracledb.DatabaseError):
    return cls(SimpleNamespace(code=code, message=message or f"ORA-{code:05d}"))


@pytest.fixture
def make_cursor():
    return FakeCursor


@pytest.fixture
def export_cursor():
    """Cursor for a healthy environment: directory and schema exist, job completes."""
    return FakeCursor(
        results={
            "dba_directories": [[("/u01/app/oracle/dpdump",)]],
            "dba_users": [[(1, "N")]],
        },
        statuses=[
            ("EXECUTING", 0, []),
            ("EXECUTING", 50, []),
            ("COMPLETED", 100, []),
        ],
    )
