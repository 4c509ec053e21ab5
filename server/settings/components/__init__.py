"""Shared helpers for settings components."""

from pathlib import Path

from decouple import AutoConfig

# Project root: the directory that holds ``server/`` and ``config/``
BASE_DIR = Path(__file__).parent.parent.parent.parent

# Loads ``config/.env`` when present, falls back to the environment
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))
