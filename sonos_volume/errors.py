"""Errors raised while establishing and running a group session."""


class SonosError(Exception):
    """Base class for all errors raised by this package."""

    stage = 'session'

    def describe(self):
        return f"{self.stage} failed: {self}"


class DiscoveryError(SonosError):
    """The SSDP search could not be started or did not complete."""

    stage = 'discovery'


class TopologyError(SonosError):
    """The zone group topology could not be fetched or is malformed."""

    stage = 'topology'


class GroupNotFoundError(SonosError):
    """The configured group is not part of the current topology."""

    stage = 'group match'

    def __init__(self, group_name, available=()):
        self.group_name = group_name
        self.available = tuple(available)
        message = f"Sonos group {group_name!r} cannot be found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class CommandError(SonosError):
    """A single control action failed."""

    stage = 'command'

    def __init__(self, action, cause):
        self.action = action
        self.cause = cause
        super().__init__(f"{action} failed: {cause}")


class SubscriptionError(SonosError):
    """The event push channel is degraded."""

    stage = 'subscription'
