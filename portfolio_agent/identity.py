"""Portfolio Agent identity constants."""

__version__ = "0.4.0"
__codename__ = "PORTFOLIO AGENT"
__tagline__ = "Talk to the portfolio. Edit it in plain words."

BANNER = r"""
  ___         _    __     _ _
 | _ \___ _ _| |_ / _|___| (_)___
 |  _/ _ \ '_|  _|  _/ _ \ | / _ \
 |_| \___/_|  \__|_| \___/_|_\___/  agent
"""
