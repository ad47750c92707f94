"""Pake GUI — local backend for the pake-cli desktop app builder.

Manages:
  - Project registry at ~/.pake-gui/<id>/tauri.conf.json
  - pake-cli command translation and live build output
  - Environment checks for node, bun, rust and pake
"""

__version__ = "0.3.0"
