import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from fakes import FakeGateway
from outreach.config import Settings
from outreach.database import create_engine, create_session_factory, init_db
from outreach.services.registry import DeviceRegistry


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_path=str(tmp_path / "data"),
        database_url=None,
        shared_secret=None,
        content_endpoint_url=None,
        apns_key_path="",
    )


@pytest.fixture
def make_registry(settings):
    """Async factory for a registry on a fresh SQLite file.

    Engines are bound to the event loop, so build them inside the test's
    asyncio.run() and dispose them before it returns.
    """
    async def factory(clock=None):
        engine = create_engine(settings)
        await init_db(engine, settings)
        kwargs = {"clock": clock} if clock else {}
        return DeviceRegistry(create_session_factory(engine), **kwargs), engine

    return factory


@pytest.fixture
def ec_key_path(tmp_path):
    key = ec.generate_private_key(ec.SECP256R1())
    path = tmp_path / "AuthKey_TEST123456.p8"
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path
