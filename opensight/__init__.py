"""
OpenSight AI Visibility Monitor

Tracks how prominently a brand is mentioned, and with what sentiment,
when AI answer engines respond to a fixed set of prompts:
1. Queries each configured engine with every active prompt of a brand
2. Detects brand and competitor mentions and scores their sentiment
3. Persists results and keeps per-brand score history
4. Compares brands against their competitors over time
5. Scores arbitrary web content for AI-visibility readiness
"""

__version__ = "0.1.0"
