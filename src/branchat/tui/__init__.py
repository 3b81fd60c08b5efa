"""Terminal UI: Rich rendering of parsed blocks and the Textual chat app."""
