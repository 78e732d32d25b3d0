"""
Intelligence Module
摘要层 - Claude 生成每日摘要与周汇总
"""
from .summarizer import (
    AnthropicSummarizer,
    Summarizer,
    dedupe_sections,
    extract_json,
    fallback_artifact,
)

__all__ = [
    "AnthropicSummarizer",
    "Summarizer",
    "dedupe_sections",
    "extract_json",
    "fallback_artifact",
]
