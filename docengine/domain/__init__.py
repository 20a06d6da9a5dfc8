"""Pure domain core: money, numbering, calculation, journal rules, ledgers."""
