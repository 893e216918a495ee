import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api import ROUTERS, register_error_handlers
from ordering.gateway.fake_adapter import TEST_SIGNATURE
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    for router in ROUTERS:
        app.include_router(router)
    register_exception_handlers(app)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def signed_headers():
    return {"stripe-signature": TEST_SIGNATURE, "content-type": "application/json"}
