"""
Delivery Module
摘要投递 - 邮件渲染与发送
"""
from .render import build_digest_html, build_subject
from .email import Deliverer, EmailDeliverer

__all__ = [
    "build_digest_html",
    "build_subject",
    "Deliverer",
    "EmailDeliverer",
]
