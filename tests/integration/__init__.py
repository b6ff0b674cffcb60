"""
Integration Tests Package for the Pricing Engine

Integration tests verify that components work together:
1. PricingService quotes from request DTOs to response DTOs
2. SQLAlchemy repositories against in-memory SQLite
3. Loading discount rules from a repository into the engine
4. The command line interface
"""

import sys
from pathlib import Path

# Add the src directory to Python path for imports
src_root = Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(src_root))
