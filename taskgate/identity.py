"""
TASKGATE identity strings, shared by the CLI and generated artifacts.
"""

__version__ = "0.4.0"
__codename__ = "TASKGATE"
__tagline__ = "Gated automation for client-library maintenance"

BANNER = r"""
 _____         _     ____       _
|_   _|_ _ ___| | __/ ___| __ _| |_ ___
  | |/ _` / __| |/ / |  _ / _` | __/ _ \
  | | (_| \__ \   <| |_| | (_| | ||  __/
  |_|\__,_|___/_|\_\\____|\__,_|\__\___|
"""
