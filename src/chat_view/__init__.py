"""Chat screen state: optimistic message list and the view controller."""

from .controller import ASSISTANT_PLACEHOLDER, ChatViewController
from .reconciliation import OptimisticMessageList

__all__ = ["ASSISTANT_PLACEHOLDER", "ChatViewController", "OptimisticMessageList"]
