"""Configuration constants for the PS5 watcher"""

from pathlib import Path

# Product pages, visited in this order (disc first, then digital)
PRODUCT_BASE_URL = "https://direct.playstation.com/en-us/consoles/console/"
MONITORED_URLS = [
    ("PS5 Disc Edition", PRODUCT_BASE_URL + "playstation5-console.3005816"),
    ("PS5 Digital Edition", PRODUCT_BASE_URL + "playstation5-digital-edition-console.3005817"),
]

# Timing (in seconds)
LOAD_TIMEOUT = 10.0  # Cancel and reload a page that takes longer than this
RETRY_DELAY = 3.0  # Pause before reloading after a challenge or a sold-out page

# Challenge handling
CHALLENGE_THRESHOLD = 3  # Automatic reloads before asking a human to solve it

# Page markers
QUEUE_MARKERS = ("When you reach the front of the queue",)
CHALLENGE_MARKERS = (
    "We’re trying to get you in",
    "We're trying to get you in",
)
MIN_MARKUP_LENGTH = 1000  # Anything shorter is treated as a challenge page

# Hero product "Add to Cart" button; other products further down the page are ignored
STOCK_SELECTOR = "div.productHero-info div.button-placeholder button.add-to-cart"
HIDDEN_CLASS = "hide"

# Block the product video so every reload doesn't pull it down again
BLOCK_RULES = """
[{
    "trigger": {
        "url-filter": ".*",
        "resource-type": ["media"]
    },
    "action": {
        "type": "block"
    }
}]
"""

# Browser window
WINDOW_SIZE = (960, 540)  # Very narrow windows may render the mobile layout
HEADLESS = False  # Challenges must be solvable in the window

# A crashed content process is reloaded; set True to give up instead
FATAL_RENDERER_TERMINATION = False

# Notifications
SOUNDS_DIR = Path("./.sounds")
SOUND_PLAYER = "afplay"
SOUND_EXTENSION = ".m4a"
QUEUE_CUE = "alert"  # Played when the waiting room opens
STOCK_CUE = "success"  # Played when the add-to-cart button shows up

# Logging
DEFAULT_LOG_FILE = Path("./logs/ps5_watch.log")
