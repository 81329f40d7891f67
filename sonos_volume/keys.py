import enum

from .control import Action

DEFAULT_VOLUME_STEP = 2
# Relative adjustment large enough to take any group down to silence
DEFAULT_MUTE_ADJUSTMENT = -200


class RemoteKey(enum.Enum):
    PLAYPAUSE = 'playpause'
    VOLUMEUP = 'volumeup'
    VOLUMEDOWN = 'volumedown'
    VOLUMEMUTE = 'volumemute'
    LOADVOLUME = 'loadvolume'
    PREVIOUSSONG = 'previoussong'
    NEXTSONG = 'nextsong'

    @classmethod
    def parse(cls, name):
        """Accepts 'volumeup', 'VOLUMEUP' or 'KEY_VOLUMEUP'."""
        key = name.strip().lower()
        if key.startswith('key_'):
            key = key[4:]
        return cls(key)


def route_key(key, is_playing, volume_step=DEFAULT_VOLUME_STEP, mute_adjustment=DEFAULT_MUTE_ADJUSTMENT):
    """Returns the (action, delta) pair a key press translates to."""
    if key is RemoteKey.PLAYPAUSE:
        return (Action.PAUSE if is_playing else Action.PLAY), 0
    if key is RemoteKey.VOLUMEUP:
        return Action.ADJUST_VOLUME, volume_step
    if key is RemoteKey.VOLUMEDOWN:
        return Action.ADJUST_VOLUME, -volume_step
    if key is RemoteKey.VOLUMEMUTE:
        return Action.ADJUST_VOLUME, mute_adjustment
    if key is RemoteKey.LOADVOLUME:
        return Action.ADJUST_VOLUME, 0
    if key is RemoteKey.NEXTSONG:
        return Action.NEXT, 0
    if key is RemoteKey.PREVIOUSSONG:
        return Action.PREVIOUS, 0
    raise ValueError(f"Unhandled key: {key}")
