"""Web Push 发送实现"""
from .webpush_sender import WebPushSender

__all__ = ["WebPushSender"]
