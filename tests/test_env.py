import logging

import pytest

from arkadex.client import ArkProvider, IntrospectorProvider
from arkadex.env import Env

BASE = {
    "ARK_SERVER_URL": "https://ark.example.com",
    "INTROSPECTOR_URL": "http://127.0.0.1:7073",
}


def make_env(**overrides):
    environment = dict(BASE)
    for key, value in overrides.items():
        if value is None:
            environment.pop(key, None)
        else:
            environment[key] = value
    return Env(environment)


def test_defaults():
    env = make_env()
    assert env.ark_server_url == "https://ark.example.com"
    assert env.introspector_url == "http://127.0.0.1:7073"
    assert env.network == "bitcoin"
    assert env.request_timeout == 30
    assert env.log_level == "info"


def test_overrides():
    env = make_env(NETWORK="regtest", REQUEST_TIMEOUT="5", LOG_LEVEL="DEBUG")
    assert env.network == "regtest"
    assert env.request_timeout == 5
    assert env.log_level == "debug"


@pytest.mark.parametrize("missing", ["ARK_SERVER_URL", "INTROSPECTOR_URL"])
def test_required_urls(missing):
    with pytest.raises(Env.Error, match=missing):
        make_env(**{missing: None})


@pytest.mark.parametrize(
    "overrides",
    [
        {"ARK_SERVER_URL": "ark.example.com"},
        {"INTROSPECTOR_URL": "ftp://127.0.0.1"},
        {"NETWORK": "liquid"},
        {"REQUEST_TIMEOUT": "soon"},
        {"REQUEST_TIMEOUT": "0"},
        {"LOG_LEVEL": "verbose"},
    ],
)
def test_invalid_values(overrides):
    with pytest.raises(Env.Error):
        make_env(**overrides)


def test_providers():
    env = make_env(REQUEST_TIMEOUT="7")
    ark_provider = env.ark_provider()
    introspector = env.introspector()
    assert isinstance(ark_provider, ArkProvider)
    assert isinstance(introspector, IntrospectorProvider)
    assert ark_provider.url("/v1/info") == "https://ark.example.com/v1/info"
    assert ark_provider.timeout.total == 7
    assert introspector.url("/v1/info") == "http://127.0.0.1:7073/v1/info"


def test_setup_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    make_env(LOG_LEVEL="Warning").setup_logging()
    assert calls[0]["level"] == "WARNING"
