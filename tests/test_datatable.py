from __future__ import annotations

from pathlib import Path

import pytest

from useradmin.database import Database
from useradmin.datatable import MAX_PAGE_LENGTH, TableQuery, UsersDataTable


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "useradmin.sqlite3")
    db.initialize()
    for index, name in enumerate(["Dana", "Ben", "Cleo", "Abe"], start=1):
        db.insert_user(name=name, email=f"user{index}@example.com", password="hash")
    return db


def _params(**extra: str) -> dict:
    params = {
        "draw": "3",
        "columns[0][data]": "id",
        "columns[1][data]": "name",
        "columns[2][data]": "email",
    }
    params.update(extra)
    return params


def test_query_parses_paging_search_and_order() -> None:
    query = TableQuery.from_params(
        _params(
            start="20",
            length="5",
            **{
                "search[value]": "  ben ",
                "order[0][column]": "1",
                "order[0][dir]": "DESC",
                "order[1][column]": "0",
                "order[1][dir]": "asc",
            },
        )
    )

    assert query.draw == 3
    assert query.start == 20
    assert query.length == 5
    assert query.search == "ben"
    assert query.order == (("name", "desc"), ("id", "asc"))


def test_query_falls_back_on_bad_values() -> None:
    query = TableQuery.from_params(
        {"draw": "x", "start": "-4", "length": "0", "order[0][column]": "9"},
        default_length=25,
    )

    assert query.draw == 0
    assert query.start == 0
    assert query.length == 25
    assert query.order == ()


def test_query_caps_page_length() -> None:
    assert TableQuery.from_params({"length": "100000"}).length == MAX_PAGE_LENGTH
    assert TableQuery.from_params({"length": "-1"}).length == -1


def test_render_returns_counts_and_rows(database: Database) -> None:
    table = UsersDataTable(database)

    payload = table.render(_params(length="2", **{"order[0][column]": "1", "order[0][dir]": "asc"}))

    assert payload["draw"] == 3
    assert payload["recordsTotal"] == 4
    assert payload["recordsFiltered"] == 4
    assert [row["name"] for row in payload["data"]] == ["Abe", "Ben"]
    assert all("password" not in row for row in payload["data"])


def test_render_filters_by_search(database: Database) -> None:
    table = UsersDataTable(database)

    payload = table.render(_params(**{"search[value]": "cle"}))

    assert payload["recordsTotal"] == 4
    assert payload["recordsFiltered"] == 1
    assert payload["data"][0]["name"] == "Cleo"


def test_render_all_rows_when_length_is_minus_one(database: Database) -> None:
    table = UsersDataTable(database, page_length=1)

    payload = table.render(_params(length="-1", start="1"))

    assert [row["id"] for row in payload["data"]] == [2, 3, 4]
