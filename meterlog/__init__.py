"""Read utility meters (files, commands, FluksoV2 pipes, dial images) into timestamped readings."""

__version__ = "0.1.0"