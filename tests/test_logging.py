import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from tollgate.limiter import Limiter
from tollgate.logging_setup import RequestLogMiddleware


def test_request_log_line(caplog):
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/ping")
    def _ping():
        return {"ok": True}

    with caplog.at_level(logging.INFO, logger="tollgate.access"):
        with TestClient(app) as client:
            client.get("/ping")

    assert any("GET /ping 200" in record.getMessage() for record in caplog.records)


def test_denials_logged_at_debug(caplog):
    limiter = Limiter(capacity=1, clock=lambda: 0.0)
    with caplog.at_level(logging.DEBUG, logger="tollgate.limiter"):
        limiter.check("10.0.0.7")
        limiter.check("10.0.0.7")

    messages = [record.getMessage() for record in caplog.records]
    assert "created bucket for '10.0.0.7'" in messages
    assert "denied '10.0.0.7', retry after 5s" in messages
