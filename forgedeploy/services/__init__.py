"""
Collaborator services: AI content, imagery, IPFS, ledgers and notifications
"""

from .content_generator import OpenAIContentService
from .image_generator import ImageGenerationService, render_placeholder_image
from .ipfs_service import IPFSService
from .ledger import LedgerCall, LedgerClient, LedgerEvent, SubmitResult
from .local_ledger import LocalLedger
from .notifier import TelegramNotifier, compose_reply
from .request_parser import RegexRequestParser

__all__ = [
    'OpenAIContentService',
    'ImageGenerationService',
    'render_placeholder_image',
    'IPFSService',
    'LedgerCall',
    'LedgerClient',
    'LedgerEvent',
    'SubmitResult',
    'LocalLedger',
    'TelegramNotifier',
    'compose_reply',
    'RegexRequestParser',
]
