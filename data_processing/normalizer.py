"""
Provider record normalization.

Each provider's raw JSON is parsed into a typed record at the boundary, then
mapped onto CanonicalPoolData. The raw JSON travels on only as an opaque
payload. All functions here are pure: the same input always yields an equal
output, which the change detector depends on.
"""
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import MIN_TVL_USD, MIN_APY, MAX_APY, MORPHO_CHAIN_IDS

SOURCE_DEFILLAMA = "defillama"
SOURCE_MORPHO = "morpho"
SOURCE_LIDO = "lido"

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"

# Chain dictionary: name -> (display name, color). Records on other chains are rejected.
CHAIN_MAPPING = {
    "ethereum": ("Ethereum", "#627EEA"),
    "arbitrum": ("Arbitrum", "#96BEDC"),
    "polygon": ("Polygon", "#8247E5"),
    "optimism": ("Optimism", "#FF0420"),
    "avalanche": ("Avalanche", "#E84142"),
    "bsc": ("BSC", "#F3BA2F"),
    "fantom": ("Fantom", "#1969FF"),
    "solana": ("Solana", "#00FFA3"),
    "base": ("Base", "#0052FF"),
    "linea": ("Linea", "#121212"),
    "scroll": ("Scroll", "#FFEEDA"),
    "blast": ("Blast", "#FCFC03"),
    "mode": ("Mode", "#DFFE00"),
    "manta": ("Manta", "#000000"),
    "mantle": ("Mantle", "#000000"),
    "fraxtal": ("Fraxtal", "#000000"),
    "cronos": ("Cronos", "#002D74"),
    "gnosis": ("Gnosis", "#04795B"),
    "sonic": ("Sonic", "#1E40AF"),
}

STABLECOIN_SYMBOLS = {"USDC", "USDT", "DAI", "USDS", "FRAX", "LUSD", "GHO", "PYUSD", "USDE", "SUSDE", "CRVUSD", "EURC"}

STETH_ADDRESS = "0xae7ab96520de3a18e5e111b5eaab095312d7fe84"

ADDRESS_RE = re.compile(r"^(0x[0-9a-fA-F]{40})")

RecordT = TypeVar("RecordT", bound=BaseModel)


class NormalizationError(ValueError):
    """A provider record is structurally unusable (missing identifiers, non-numeric values)."""
    pass


@dataclass(frozen=True)
class CanonicalPoolData:
    source: str
    external_id: str
    platform_name: str
    platform_display_name: str
    chain_name: str
    token_pair: str
    apy: Optional[float]
    tvl: Optional[float]
    risk_level: str
    pool_address: Optional[str] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def chain_display_name(self) -> str:
        return CHAIN_MAPPING.get(self.chain_name, (self.chain_name.title(), None))[0]

    @property
    def chain_color(self) -> Optional[str]:
        return CHAIN_MAPPING.get(self.chain_name, (None, None))[1]

    def sync_values(self) -> Dict[str, Any]:
        """Column values a sync write may carry for this record."""
        return {
            "source": self.source,
            "external_id": self.external_id,
            "token_pair": self.token_pair,
            "apy": self.apy,
            "tvl": self.tvl,
            "risk_level": self.risk_level,
            "pool_address": self.pool_address,
            "raw_payload": self.raw_payload,
        }


def platform_key(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


# Provider records

def _blank_to_none(value):
    return None if value == "" else value


class DefiLlamaPoolRecord(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    pool: str = Field(min_length=1)
    chain: str = Field(min_length=1)
    project: str = Field(min_length=1)
    symbol: str = "Unknown"
    tvl_usd: Optional[float] = Field(default=None, alias="tvlUsd")
    apy: Optional[float] = None
    il_risk: Optional[str] = Field(default=None, alias="ilRisk")
    stablecoin: bool = False
    outlier: bool = False
    underlying_tokens: List[str] = Field(default_factory=list, alias="underlyingTokens")

    @field_validator("symbol", mode="before")
    @classmethod
    def default_symbol(cls, v):
        return v or "Unknown"

    @field_validator("tvl_usd", "apy", "il_risk", mode="before")
    @classmethod
    def blank_is_missing(cls, v):
        return _blank_to_none(v)

    @field_validator("stablecoin", "outlier", mode="before")
    @classmethod
    def null_is_false(cls, v):
        return False if v is None else v

    @field_validator("underlying_tokens", mode="before")
    @classmethod
    def null_is_empty(cls, v):
        return [] if v is None else v


class MorphoChain(BaseModel):
    id: Optional[int] = None
    network: Optional[str] = None


class MorphoAsset(BaseModel):
    symbol: Optional[str] = None


class MorphoVaultState(BaseModel):
    model_config = {"populate_by_name": True}

    apy: Optional[float] = None
    net_apy: Optional[float] = Field(default=None, alias="netApy")
    total_assets_usd: Optional[float] = Field(default=None, alias="totalAssetsUsd")


class MorphoVaultRecord(BaseModel):
    model_config = {"frozen": True}

    address: str = Field(min_length=1)
    name: Optional[str] = None
    symbol: Optional[str] = None
    asset: MorphoAsset = Field(default_factory=MorphoAsset)
    chain: MorphoChain = Field(default_factory=MorphoChain)
    state: MorphoVaultState

    @field_validator("asset", "chain", mode="before")
    @classmethod
    def null_is_empty(cls, v):
        return {} if v is None else v

    @property
    def vault_address(self) -> str:
        return self.address.lower()

    @property
    def chain_name(self) -> str:
        name = (self.chain.network or "").lower() or MORPHO_CHAIN_IDS.get(self.chain.id, "")
        return "ethereum" if name == "mainnet" else name

    @property
    def display_symbol(self) -> str:
        return self.symbol or self.name or self.asset.symbol or "Unknown"

    @property
    def apy_fraction(self) -> Optional[float]:
        # netApy includes rewards; fall back to the base apy when it is absent or zero
        return self.state.net_apy or self.state.apy


class LidoAprRecord(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    sma_apr: float = Field(alias="smaApr")
    last_apr: Optional[float] = Field(default=None, alias="lastApr")
    sma_time_unix: Optional[int] = Field(default=None, alias="smaTimeUnix")
    last_time_unix: Optional[int] = Field(default=None, alias="lastTimeUnix")


def parse_record(model: Type[RecordT], record: Any) -> RecordT:
    """Validate a provider record, turning any shape or type problem into a NormalizationError."""
    try:
        return model.model_validate(record)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                             for err in e.errors())
        raise NormalizationError(f"invalid {model.__name__}: {problems}")


# Risk heuristics

def map_risk_level(il_risk: Optional[str], stablecoin: bool) -> str:
    if stablecoin:
        return RISK_LOW
    if not il_risk:
        return RISK_MEDIUM
    risk = il_risk.lower()
    if risk in ("no", "low"):
        return RISK_LOW
    if risk in ("yes", "high"):
        return RISK_HIGH
    return RISK_MEDIUM


def is_stablecoin_symbol(symbol: Optional[str]) -> bool:
    return bool(symbol) and symbol.upper() in STABLECOIN_SYMBOLS


# Quality gates

def passes_quality_gates(apy: Optional[float], tvl: Optional[float], chain_name: str,
                         outlier: bool = False, check_tvl: bool = True,
                         min_tvl: float = MIN_TVL_USD, min_apy: float = MIN_APY, max_apy: float = MAX_APY) -> bool:
    if outlier or chain_name not in CHAIN_MAPPING:
        return False
    if apy is None or not (min_apy < apy < max_apy):
        return False
    if check_tvl and (tvl is None or tvl < min_tvl):
        return False
    return True


# Normalizers

def normalize_defillama(record: Dict[str, Any], **gates) -> Optional[CanonicalPoolData]:
    """Returns None for records filtered out by the quality gates."""
    parsed = parse_record(DefiLlamaPoolRecord, record)
    chain_name = parsed.chain.lower()
    if not passes_quality_gates(parsed.apy, parsed.tvl_usd, chain_name, outlier=parsed.outlier, **gates):
        return None

    # Pool ids are UUIDs for most projects; some embed the contract address
    match = ADDRESS_RE.match(parsed.pool)
    return CanonicalPoolData(
        source=SOURCE_DEFILLAMA,
        external_id=parsed.pool,
        platform_name=platform_key(parsed.project),
        platform_display_name=parsed.project,
        chain_name=chain_name,
        token_pair=parsed.symbol,
        apy=parsed.apy,
        tvl=parsed.tvl_usd,
        risk_level=map_risk_level(parsed.il_risk, parsed.stablecoin),
        pool_address=match.group(1).lower() if match else None,
        raw_payload=dict(record),
    )


def normalize_morpho(record: Dict[str, Any], **gates) -> Optional[CanonicalPoolData]:
    parsed = parse_record(MorphoVaultRecord, record)
    # The API reports APY as a fraction
    apy = round(parsed.apy_fraction * 100, 6) if parsed.apy_fraction is not None else None
    if not passes_quality_gates(apy, parsed.state.total_assets_usd, parsed.chain_name, **gates):
        return None

    return CanonicalPoolData(
        source=SOURCE_MORPHO,
        external_id=parsed.vault_address,
        platform_name="morpho",
        platform_display_name="Morpho",
        chain_name=parsed.chain_name,
        token_pair=parsed.display_symbol,
        apy=apy,
        tvl=parsed.state.total_assets_usd,
        risk_level=RISK_LOW if is_stablecoin_symbol(parsed.asset.symbol) else RISK_MEDIUM,
        pool_address=parsed.vault_address,
        raw_payload=dict(record),
    )


def normalize_lido(record: Dict[str, Any], **gates) -> Optional[CanonicalPoolData]:
    """Lido reports no TVL, so only the APY gate applies."""
    parsed = parse_record(LidoAprRecord, record)
    gates.setdefault("check_tvl", False)
    if not passes_quality_gates(parsed.sma_apr, None, "ethereum", **gates):
        return None

    return CanonicalPoolData(
        source=SOURCE_LIDO,
        external_id="lido-steth",
        platform_name="lido",
        platform_display_name="Lido",
        chain_name="ethereum",
        token_pair="stETH",
        apy=parsed.sma_apr,
        tvl=None,
        risk_level=RISK_LOW,
        pool_address=STETH_ADDRESS,
        raw_payload=dict(record),
    )


NORMALIZERS = {
    SOURCE_DEFILLAMA: normalize_defillama,
    SOURCE_MORPHO: normalize_morpho,
    SOURCE_LIDO: normalize_lido,
}
