"""
Addresses and model factories shared by the test suite
"""

from vaultsim.models.simulation import VaultInfo, ZapQuote

USER = "0x742c4b7c6bb8d7ea6e8d0ac748fc6b5f10d85b3a"
DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
YV_DAI = "0x19d3364a399d251e894ac732651be8b0e4e85001"
YVBOOST_JAR = "0xced67a187b923f0e5ebcc77c7f2f7da20099e378"
ZAP_CONTRACT = "0x92be6adb6a12da0ca607f9d87db2f9978cd6ec3e"

ONE_POINT_O_FIVE = 1_050_000_000_000_000_000


def make_vault(address: str = YV_DAI, underlying: str = DAI, family: str = "yearn", **kwargs) -> VaultInfo:
    return VaultInfo(address=address, underlying_token=underlying, route_family=family, **kwargs)


def make_quote(**overrides) -> ZapQuote:
    fields = {
        "to": ZAP_CONTRACT,
        "data": "0xdeadbeef",
        "value": 0,
        "gas": 450_000,
        "gas_price": 30_000_000_000,
        "buy_token_address": YV_DAI,
        "sell_token_address": USDC,
        "from_address": USER,
    }
    fields.update(overrides)
    return ZapQuote(**fields)
