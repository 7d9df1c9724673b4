"""
IPFS pinning for token images and metadata
"""

import logging
from io import BytesIO
from typing import Dict, Optional

import aiohttp
import requests

PINATA_FILE_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"
PINATA_JSON_URL = "https://api.pinata.cloud/pinning/pinJSONToIPFS"
WEB3_STORAGE_URL = "https://api.web3.storage/upload"


class IPFSService:
    """Pinata or web3.storage; every method returns None instead of raising"""

    def __init__(self, pinata_api_key: Optional[str] = None, pinata_secret_key: Optional[str] = None,
                 web3_storage_token: Optional[str] = None, timeout: float = 30.0):
        self.pinata_api_key = pinata_api_key
        self.pinata_secret_key = pinata_secret_key
        self.web3_storage_token = web3_storage_token
        self.timeout = timeout
        self.logger = logging.getLogger('forgedeploy')

    @classmethod
    def from_settings(cls, settings) -> 'IPFSService':
        return cls(settings.pinata_api_key, settings.pinata_secret_key, settings.web3_storage_token)

    @property
    def configured(self) -> bool:
        return bool((self.pinata_api_key and self.pinata_secret_key) or self.web3_storage_token)

    def _pinata_headers(self) -> Dict[str, str]:
        return {
            "pinata_api_key": self.pinata_api_key,
            "pinata_secret_api_key": self.pinata_secret_key,
        }

    async def pin_image_url(self, image_url: str, name: str = 'token-image') -> Optional[str]:
        """Download an image and pin it; returns an ipfs:// URI"""
        if not self.configured or not image_url.startswith('http'):
            return None

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(image_url) as response:
                    if response.status != 200:
                        self.logger.error(f"Failed to download image: {response.status}")
                        return None
                    image_data = await response.read()
                    content_type = response.headers.get('Content-Type', 'image/png')
        except aiohttp.ClientError as e:
            self.logger.error(f"Error downloading image for IPFS: {e}")
            return None

        return self.pin_bytes(image_data, content_type, name)

    def pin_bytes(self, data: bytes, content_type: str, name: str) -> Optional[str]:
        try:
            if self.pinata_api_key and self.pinata_secret_key:
                files = {'file': (name, BytesIO(data), content_type)}
                response = requests.post(PINATA_FILE_URL, files=files, headers=self._pinata_headers(),
                                         timeout=self.timeout)
                if response.status_code == 200:
                    cid = response.json()['IpfsHash']
                    self.logger.info(f"Image pinned to IPFS: {cid}")
                    return f"ipfs://{cid}"
                self.logger.error(f"Pinata upload failed: {response.text}")

            elif self.web3_storage_token:
                headers = {"Authorization": f"Bearer {self.web3_storage_token}", "X-NAME": name}
                response = requests.post(WEB3_STORAGE_URL, data=data, headers=headers, timeout=self.timeout)
                if response.status_code == 200:
                    cid = response.json()['cid']
                    self.logger.info(f"Image pinned to IPFS: {cid}")
                    return f"ipfs://{cid}"
                self.logger.error(f"Web3.storage upload failed: {response.text}")

            else:
                self.logger.warning("No IPFS service configured for image upload")

        except (requests.RequestException, KeyError, ValueError) as e:
            self.logger.error(f"Error uploading image to IPFS: {e}")
        return None

    def pin_json(self, metadata: Dict) -> Optional[str]:
        """Pin a metadata document; returns an ipfs:// URI"""
        try:
            if self.pinata_api_key and self.pinata_secret_key:
                response = requests.post(PINATA_JSON_URL, json=metadata, headers=self._pinata_headers(),
                                         timeout=self.timeout)
                if response.status_code == 200:
                    return f"ipfs://{response.json()['IpfsHash']}"
                self.logger.error(f"Pinata JSON pin failed: {response.text}")

            elif self.web3_storage_token:
                headers = {
                    "Authorization": f"Bearer {self.web3_storage_token}",
                    "Content-Type": "application/json",
                }
                response = requests.post(WEB3_STORAGE_URL, json=metadata, headers=headers, timeout=self.timeout)
                if response.status_code == 200:
                    return f"ipfs://{response.json()['cid']}"
                self.logger.error(f"Web3.storage JSON upload failed: {response.text}")

        except (requests.RequestException, KeyError, ValueError) as e:
            self.logger.error(f"Error uploading metadata to IPFS: {e}")
        return None
