import re


# 2.x/3.x print "The server is now ready to accept connections on port N",
# 4.x and later print "Ready to accept connections" (7.x appends "tcp"/"tls").
SERVER_READY_PATTERN = r'[Rr]eady to accept connections'

# Older sentinels log "Sentinel runid is <id>", newer ones "Sentinel ID is <id>".
SENTINEL_READY_PATTERN = r'Sentinel (runid|ID) is'


class ReadinessDetector:
    """Scans process output lines for the startup success pattern."""

    def __init__(self, pattern=SERVER_READY_PATTERN):
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.matched = False

    def reset(self):
        self.matched = False

    def feed(self, line) -> bool:
        if not self.matched and self.pattern.search(line):
            self.matched = True
        return self.matched

    def scan(self, lines) -> bool:
        """Feed lines until the pattern matches; return whether it did."""
        for line in lines:
            if self.feed(line):
                return True
        return False
