"""
Unit Tests Package for the Pricing Engine

Unit tests exercise the domain layer in isolation:
value objects, the pricing hierarchy, discount rules and the engine,
VAT calculation, booking cost composition and discount policies.
"""

import sys
from pathlib import Path

# Add the src directory to Python path for imports
src_root = Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(src_root))
