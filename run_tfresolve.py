#!/usr/bin/env python3
"""
Direct runner for the Terraform name resolver
This script can be run directly with Python without installing the package
"""

import sys
import os

# Add the src directory to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
src_dir = os.path.join(current_dir, 'src')
sys.path.insert(0, src_dir)

try:
    from tf_name_resolver.cli import main
except ImportError as e:
    print(f"Import Error: {e}")
    print("\nTroubleshooting:")
    print("1. Make sure you're in the repository root directory")
    print("2. Install dependencies: pip install -r requirements.txt")
    print("3. Try running: python run_tfresolve.py --help")
    sys.exit(1)

if __name__ == "__main__":
    main()
