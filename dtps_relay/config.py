"""
Relay Configuration

Loads relay_config.yaml and applies DTPS_* environment overrides (a local
.env file is honoured through python-dotenv).

Example relay_config.yaml:

    primary_backend: dhealth
    credential_store: yaml
    credentials_path: credentials.yaml
    legacy_network:
      directory_url: http://peers.dhealth.cloud:7903
    dhealth_network:
      url: rest+https://lcd.dhealth.com
      balance_threshold: 6000
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger

from .exceptions import ConfigError


ENV_PREFIX = 'DTPS_'


@dataclass
class LegacyNetworkConfig:
    """Identity of the legacy chain; constants of the ledger, not of a node"""
    directory_url: str = 'http://peers.dhealth.cloud:7903'
    node_url_template: str = 'http://{host}:3000'
    network_name: str = 'dhealth-mainnet'
    network_identifier: int = 0x68  # MAIN_NET
    epoch_adjustment: int = 1616978397
    generation_hash: str = 'ED5761EA890A096C50D3F50B7C2F0CCB4B84AFC9EA870F381E84DDE36D04EF16'
    currency_mosaic_id: str = '39E0C49FA322A459'
    currency_namespace: str = 'dhealth.dhp'
    currency_divisibility: int = 6
    deadline_hours: int = 2


@dataclass
class DhealthNetworkConfig:
    """Endpoint and fixed send parameters of the new chain"""
    url: str = 'rest+https://lcd.dhealth.com'
    chain_id: str = 'dhealth'
    address_prefix: str = 'dh'
    denom: str = 'udhp'
    hd_path: str = "m/44'/10111'/0'/0/0"
    gas_limit: int = 200000
    fee_amount: int = 500
    send_amount: int = 1
    balance_threshold: int = 6000

    @property
    def minimum_gas_price(self) -> float:
        # cosmpy derives the fee as gas_limit * price
        return self.fee_amount / self.gas_limit


@dataclass
class RelayConfig:
    """Top-level relay configuration"""
    host: str = '0.0.0.0'
    port: int = 8080
    log_level: str = 'INFO'
    service_name: str = 'dtps-relay'
    primary_backend: str = 'dhealth'  # 'dhealth' or 'legacy'
    credential_store: str = 'yaml'  # 'yaml' or 'firestore'
    credentials_path: str = 'credentials.yaml'
    firestore_project: Optional[str] = None
    legacy_network: LegacyNetworkConfig = field(default_factory=LegacyNetworkConfig)
    dhealth_network: DhealthNetworkConfig = field(default_factory=DhealthNetworkConfig)

    # flat env var -> (section, attribute)
    ENV_OVERRIDES = {
        'HOST': (None, 'host'),
        'PORT': (None, 'port'),
        'LOG_LEVEL': (None, 'log_level'),
        'PRIMARY_BACKEND': (None, 'primary_backend'),
        'CREDENTIAL_STORE': (None, 'credential_store'),
        'CREDENTIALS_PATH': (None, 'credentials_path'),
        'FIRESTORE_PROJECT': (None, 'firestore_project'),
        'DIRECTORY_URL': ('legacy_network', 'directory_url'),
        'DHEALTH_URL': ('dhealth_network', 'url'),
        'DHEALTH_CHAIN_ID': ('dhealth_network', 'chain_id'),
    }

    def validate(self):
        """Raise ConfigError on values the relay cannot run with"""
        if self.primary_backend not in ('dhealth', 'legacy'):
            raise ConfigError(f"primary_backend must be 'dhealth' or 'legacy', got {self.primary_backend!r}")
        if self.credential_store not in ('yaml', 'firestore'):
            raise ConfigError(f"credential_store must be 'yaml' or 'firestore', got {self.credential_store!r}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}")
        if len(self.legacy_network.generation_hash) != 64:
            raise ConfigError("legacy_network.generation_hash must be 32 bytes of hex")
        if self.dhealth_network.gas_limit <= 0:
            raise ConfigError("dhealth_network.gas_limit must be positive")
        if not self.dhealth_network.url.startswith(('rest+', 'grpc+')):
            raise ConfigError("dhealth_network.url must start with 'rest+' or 'grpc+'")

    @classmethod
    def load(cls, config_path: str = 'relay_config.yaml', env: Optional[Dict[str, str]] = None) -> 'RelayConfig':
        """
        Load configuration from YAML, then apply environment overrides

        Args:
            config_path: Path to the YAML file (missing file means defaults)
            env: Environment mapping, defaults to os.environ after load_dotenv()

        Returns:
            Validated RelayConfig
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        raw = cls._read_yaml(Path(config_path))
        config = cls._from_dict(raw)
        config._apply_env(env)
        config.validate()

        logger.info(f"Relay config loaded (primary backend: {config.primary_backend}, "
                    f"store: {config.credential_store})")
        return config

    @staticmethod
    def _read_yaml(path: Path) -> Dict:
        if not path.exists():
            logger.warning(f"Config file {path} not found, using defaults")
            return {}

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        return data

    @classmethod
    def _from_dict(cls, data: Dict) -> 'RelayConfig':
        sections = {
            'legacy_network': LegacyNetworkConfig,
            'dhealth_network': DhealthNetworkConfig,
        }
        kwargs = {}
        known = {f.name for f in fields(cls)}

        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            if key in sections:
                kwargs[key] = _build_section(sections[key], value or {}, key)
            else:
                kwargs[key] = value

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(str(e)) from e

    def _apply_env(self, env: Dict[str, str]):
        for name, (section, attribute) in self.ENV_OVERRIDES.items():
            value = env.get(ENV_PREFIX + name)
            if value is None:
                continue

            target = getattr(self, section) if section else self
            current = getattr(target, attribute)
            if isinstance(current, int) and not isinstance(current, bool):
                try:
                    value = int(value)
                except ValueError as e:
                    raise ConfigError(f"{ENV_PREFIX + name} must be an integer") from e

            setattr(target, attribute, value)
            logger.debug(f"Config override from env: {ENV_PREFIX + name}")


def _build_section(section_cls, values: Dict, name: str):
    if not isinstance(values, dict):
        raise ConfigError(f"{name} must be a mapping")
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown keys in {name}: {', '.join(sorted(unknown))}")
    return section_cls(**values)
