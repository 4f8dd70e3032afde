import duckdb
import pytest

from celine.access.core.errors import RewriteError
from celine.access.db.session import AccessSession


@pytest.fixture
def parquet_files(tmp_path):
    """Two Parquet parts of a customers table."""
    con = duckdb.connect()
    part0 = tmp_path / "customers-0.parquet"
    part1 = tmp_path / "customers-1.parquet"
    con.execute(
        f"""
        COPY (
            SELECT * FROM (VALUES
                (1, 'Ada', '111-11-1111', 'US', 34),
                (2, 'Bruno', '222-22-2222', 'EU', 17)
            ) AS t(id, name, ssn, region, age)
        ) TO '{part0}' (FORMAT PARQUET)
        """
    )
    con.execute(
        f"""
        COPY (
            SELECT * FROM (VALUES
                (3, 'Chen', '333-33-3333', 'US', 16),
                (4, 'Dana', '444-44-4444', 'US', 52)
            ) AS t(id, name, ssn, region, age)
        ) TO '{part1}' (FORMAT PARQUET)
        """
    )
    con.close()
    return [str(part0), str(part1)]


@pytest.fixture
def session(engine):
    s = AccessSession(duckdb.connect(), engine=engine)
    yield s
    s.close()


def _customers(payload, files, **kwargs):
    return payload(
        files=files,
        columns=[
            {"name": "id", "type": "INTEGER"},
            {"name": "name", "type": "VARCHAR"},
            {"name": "ssn", "type": "VARCHAR"},
            {"name": "region", "type": "VARCHAR"},
            {"name": "age", "type": "INTEGER"},
        ],
        **kwargs,
    )


def test_without_authorization_host_resolution_is_untouched(api, session):
    with pytest.raises(duckdb.CatalogException):
        session.execute("SELECT * FROM customers")
    assert api.calls == 0


def test_not_found_fails_binding_with_server_message(api, session, context):
    session.set_authorization(context)
    api.respond("main", "customers", 404, {"message": "no such table"})

    with pytest.raises(RewriteError) as exc:
        session.execute("SELECT * FROM customers")

    assert "no such table" in str(exc.value)


def test_direct_scan_over_all_files(api, session, context, payload, parquet_files):
    session.set_authorization(context)
    api.serve(_customers(payload, parquet_files))

    rows = session.execute("SELECT id, name FROM customers ORDER BY id").fetchall()

    assert rows == [(1, "Ada"), (2, "Bruno"), (3, "Chen"), (4, "Dana")]
    resolved = session.rewrite_sql("SELECT * FROM customers")
    assert resolved.rewrites["main.customers"].is_direct_scan


def test_masks_and_filters_are_enforced(api, session, context, payload, parquet_files):
    session.set_authorization(context)
    api.serve(
        _customers(
            payload,
            parquet_files,
            row_filters=["region = 'US'", "age >= 18"],
            column_masks={"ssn": "'***'", "name": "left(name, 1) || '.'"},
        )
    )

    rows = session.execute("SELECT * FROM customers ORDER BY id").fetchall()

    assert rows == [
        (1, "A.", "***", "US", 34),
        (4, "D.", "***", "US", 52),
    ]


def test_masked_column_never_leaks_through_filters(api, session, context, payload, parquet_files):
    session.set_authorization(context)
    api.serve(_customers(payload, parquet_files, column_masks={"ssn": "'***'"}))

    rows = session.execute(
        "SELECT count(*) FROM customers WHERE ssn = '111-11-1111'"
    ).fetchall()

    assert rows == [(0,)]


def test_joins_with_local_tables(api, session, context, payload, parquet_files):
    session.con.execute("CREATE TABLE tiers AS SELECT 1 AS id, 'gold' AS tier")
    session.set_authorization(context)
    api.serve(_customers(payload, parquet_files, row_filters=["region = 'US'"]))

    rows = session.execute(
        "SELECT c.name, t.tier FROM customers c JOIN tiers t ON c.id = t.id"
    ).fetchall()

    assert rows == [("Ada", "gold")]
    assert session.is_local("main", "TIERS")
    assert not session.is_local("main", "customers")


def test_invalidate_refetches(api, session, context, payload, parquet_files):
    session.set_authorization(context)
    api.serve(_customers(payload, parquet_files))

    session.execute("SELECT 1 FROM customers").fetchall()
    session.execute("SELECT 1 FROM customers").fetchall()
    assert api.calls == 1

    session.invalidate("main", "customers")
    session.execute("SELECT 1 FROM customers").fetchall()
    assert api.calls == 2


def test_clear_authorization(api, session, context):
    session.set_authorization(context)
    session.clear_authorization()

    assert session.lookup_current_authorization() is None
    with pytest.raises(duckdb.CatalogException):
        session.execute("SELECT * FROM customers")


def test_parameters_are_passed_through(api, session, context, payload, parquet_files):
    session.set_authorization(context)
    api.serve(_customers(payload, parquet_files))

    rows = session.execute("SELECT name FROM customers WHERE id = ?", [3]).fetchall()

    assert rows == [("Chen",)]


def test_masks_apply_when_manifest_lists_no_columns(
    api, session, context, payload, parquet_files
):
    session.set_authorization(context)
    api.serve(payload(files=parquet_files, columns=[], column_masks={"ssn": "'***'"}))

    rows = session.execute("SELECT ssn, name FROM customers ORDER BY id").fetchall()

    assert [r[0] for r in rows] == ["***"] * 4
    assert [r[1] for r in rows] == ["Ada", "Bruno", "Chen", "Dana"]


def test_injected_cache_is_used_even_when_empty(cache):
    assert len(cache) == 0

    s = AccessSession(duckdb.connect(), cache=cache)
    try:
        assert s.cache is cache
        assert s.engine.cache is cache
    finally:
        s.close()
