"""
Credential Store

Read-only lookup of stored documents by collection and key:
- configs/auth                      IP whitelist and authorization codes
- configs/dhealthBroadcastRecipient {production, staging} new chain (dh1...) recipients
- configs/broadcastRecipient        same, legacy chain addresses for the primary variant
- configs/legacyBroadcastRecipient  same, for the legacy variant
- entities/<key>                    sender records (privateKey | mnemonic + address, production)

Two backends: a YAML document for local runs, Firestore for deployments.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from google.cloud import firestore
from loguru import logger

from .config import RelayConfig
from .exceptions import ConfigError


class CredentialStore:
    """Lookup service contract"""

    async def find_doc(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Find a document in a collection

        Args:
            collection: Collection name (e.g. 'configs', 'entities')
            key: Document id

        Returns:
            A copy of the document, or None when absent
        """
        raise NotImplementedError

    async def close(self):
        return None


class YamlCredentialStore(CredentialStore):
    """
    Credential store backed by an in-memory mapping or a YAML file

    Layout: {collection: {key: record}}
    """

    def __init__(self, documents: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self.documents = documents or {}

    @classmethod
    def from_file(cls, path: str) -> 'YamlCredentialStore':
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigError(f"Credentials file not found: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            documents = yaml.safe_load(f) or {}

        if not isinstance(documents, dict):
            raise ConfigError(f"{file_path} must map collections to documents")

        counts = {name: len(docs or {}) for name, docs in documents.items()}
        logger.info(f"Loaded credential store from {file_path}: {counts}")
        return cls(documents)

    async def find_doc(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        if not key:
            return None
        doc = (self.documents.get(collection) or {}).get(key)
        if doc is None:
            logger.debug(f"Document not found: {collection}/{key[:6]}…")
            return None
        return copy.deepcopy(doc)


class FirestoreCredentialStore(CredentialStore):
    """Credential store backed by Google Cloud Firestore"""

    def __init__(self, client: Optional[firestore.AsyncClient] = None, project: Optional[str] = None):
        self.client = client or firestore.AsyncClient(project=project)

    async def find_doc(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        if not key:
            return None
        snapshot = await self.client.collection(collection).document(key).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()


def create_credential_store(config: RelayConfig) -> CredentialStore:
    """Build the credential store selected in the relay config"""
    if config.credential_store == 'firestore':
        logger.info(f"Using Firestore credential store (project: {config.firestore_project or 'default'})")
        return FirestoreCredentialStore(project=config.firestore_project)
    return YamlCredentialStore.from_file(config.credentials_path)
