import logging


class ShortNameFilter(logging.Filter):
    """Adds %(shortname)s: the last two dotted parts of the logger name."""

    def filter(self, record):
        path = record.name.split(".")
        record.shortname = "-".join(path[-2:])
        return True
