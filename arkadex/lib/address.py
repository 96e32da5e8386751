# -*- coding: utf-8 -*-

from bitcointx import ChainParams
from bitcointx.wallet import CCoinAddress, CCoinAddressError

# Ark network names to bitcointx chain parameters
NETWORKS = {
    "bitcoin": "bitcoin",
    "mainnet": "bitcoin",
    "testnet": "bitcoin/testnet",
    "signet": "bitcoin/signet",
    "mutinynet": "bitcoin/signet",
    "regtest": "bitcoin/regtest",
}


class InvalidAddressError(ValueError):
    pass


def chain_params_name(network: str) -> str:
    if network in NETWORKS.values():
        return network
    try:
        return NETWORKS[network]
    except KeyError:
        raise InvalidAddressError(f"unknown network {network!r}")


def address_to_script(address: str, network: str = "bitcoin") -> bytes:
    """Return the output script paying to ``address`` on ``network``."""
    with ChainParams(chain_params_name(network)):
        try:
            return bytes(CCoinAddress(address).to_scriptPubKey())
        except CCoinAddressError as e:
            raise InvalidAddressError(f"invalid address {address}: {e}") from e
