#!/usr/bin/env python3
"""
Entry point for running embedded_redis as a module.
This file enables: python -m embedded_redis
"""

from .main import main

if __name__ == '__main__':
    main()
