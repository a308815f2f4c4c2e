# Copyright (c) Syntropy Systems
"""Pydantic models shared across stratbench."""
