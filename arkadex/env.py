# -*- coding: utf-8 -*-

"""Client configuration read from the environment (and an optional .env file)."""

import re
from os import environ

from dotenv import load_dotenv

from arkadex.client import ArkProvider, IntrospectorProvider
from arkadex.lib import util
from arkadex.lib.address import InvalidAddressError, chain_params_name


class Env:
    """Wraps environment configuration.  Optionally accepts a mapping to
    read instead of os.environ, for testing purposes."""

    class Error(Exception):
        pass

    def __init__(self, environment=None):
        if environment is None:
            load_dotenv()
            environment = environ
        self.environment = environment

        self.ark_server_url = self.url("ARK_SERVER_URL")
        self.introspector_url = self.url("INTROSPECTOR_URL")
        self.network = self.default("NETWORK", "bitcoin")
        try:
            chain_params_name(self.network)
        except InvalidAddressError as e:
            raise self.Error(f"NETWORK: {e}") from e
        self.request_timeout = self.integer("REQUEST_TIMEOUT", 30)
        if self.request_timeout <= 0:
            raise self.Error("REQUEST_TIMEOUT must be positive")
        self.log_level = self.default("LOG_LEVEL", "info").lower()
        if self.log_level not in ("debug", "info", "warning", "error", "critical"):
            raise self.Error(f"invalid LOG_LEVEL {self.log_level!r}")

    def default(self, envvar, default):
        return self.environment.get(envvar, default)

    def required(self, envvar):
        value = self.environment.get(envvar)
        if value is None:
            raise self.Error(f"required envvar {envvar} not set")
        return value

    def integer(self, envvar, default):
        value = self.environment.get(envvar)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise self.Error(f"cannot convert envvar {envvar} value {value} to an integer")

    def url(self, envvar):
        value = self.required(envvar)
        if not re.match(r"^https?://", value):
            raise self.Error(f"{envvar} must be an http(s) URL, got {value!r}")
        return value

    def ark_provider(self) -> ArkProvider:
        return ArkProvider(self.ark_server_url, timeout=self.request_timeout)

    def introspector(self) -> IntrospectorProvider:
        return IntrospectorProvider(self.introspector_url, timeout=self.request_timeout)

    def setup_logging(self):
        util.setup_logging(self.log_level)
