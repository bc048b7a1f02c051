#!/usr/bin/env python3
"""
Starbot - Entry Point

Telegram bot announcing Star Realms turns, challenges and finished games.
The actual implementation is in the starbot package.
"""

if __name__ == "__main__":
    from starbot import main
    main()
