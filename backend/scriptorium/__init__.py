"""Scriptorium: a single-user novel-writing backend with streamed AI critique."""

__version__ = "0.1.0"
