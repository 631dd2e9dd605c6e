"""
Simple entry point script to run the simulation

This script can be run directly: python run_simulation.py simulate --capital 1000 --withdrawal 40
"""

import sys

from survival_model.main import main

if __name__ == "__main__":
    sys.exit(main())
