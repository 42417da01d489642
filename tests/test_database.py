from sqlalchemy import inspect

from caixasim.core.database import engine, get_db, init_db


def test_init_db_creates_simulation_table():
    init_db()
    init_db()  # idempotent

    assert "simulacoes_caixa" in inspect(engine).get_table_names()


def test_get_db_closes_session():
    generator = get_db()
    db = next(generator)

    assert db.bind is engine
    generator.close()
