"""Built-in line type catalog for vanilla server output.

Four sets, registered in this order by :func:`default_registry`:

* ``COMMANDS`` — echoes of administrative commands. Each command comes in a
  ``_SERVER`` form (issued from the console) and a ``_PLAYER`` form (issued
  in game, wrapped as ``[issuer: ...]``).
* ``PLAYERS``  — joins, leaves, chat, logins, uuids, disconnects.
* ``DEATHS``   — the death message catalog. Every type in this set carries
  the structural ``death`` tag.
* ``SERVER``   — server readiness.

Patterns must match the whole content, so shapes that merely share a prefix
("was slain by X" / "was slain by X using Y") never collide. Where two
patterns can both match ("was killed by X using magic" against "was killed
by X using Y") the one declared first wins. Several death messages are
guesses about who caused the death; the field layout follows the message
grammar, not game mechanics.
"""
from __future__ import annotations

from ..directory.actors import ACTOR_NAME_PATTERN as NAME
from ..directory.actors import UUID_PATTERN as UUID
from .base import ABSENT, LineType, LineTypeRegistry, LineTypeSet

_ = ABSENT
GAMEMODE = r"(Survival|Creative|Adventure|Spectator) Mode"
WEATHER = r"(clear|rain|rain & thunder)"
ANY = r"(.+)"


def _t(name: str, pattern: str, cause: int = _, recipient: int = _, sub: int = _) -> LineType:
    return LineType.build(name, pattern, cause, recipient, sub)


def _issued(body: str) -> str:
    """Wrap a console echo as the in-game ``[issuer: body]`` form."""
    return rf"\[{NAME}: {body}\]"


# ── Commands ────────────────────────────────────────────────────────────────
# Field order for _t: cause_user, recipient, sub_contents.

COMMANDS = LineTypeSet("COMMANDS", [
    _t("BAN_SERVER", rf"Banned {NAME}: {ANY}", _, 1, 2),
    _t("BAN_PLAYER", _issued(rf"Banned {NAME}: {ANY}"), 1, 2, 3),
    _t("DEOPPED_SERVER", rf"Made {NAME} no longer a server operator", _, 1, _),
    _t("DEOPPED_PLAYER", _issued(rf"Made {NAME} no longer a server operator"), 1, 2, _),
    _t("GAMEMODE_SERVER", rf"Set {NAME}'s game mode to {GAMEMODE}", _, 1, 2),
    _t("GAMEMODE_PLAYER", _issued(rf"Set {NAME}'s game mode to {GAMEMODE}"), 1, 2, 3),
    _t("GAMEMODE_PLAYER_SELF", _issued(rf"Set own game mode to {GAMEMODE}"), 1, 1, 2),
    _t("GAVE_SERVER", rf"Gave \d+ \[([^\]]+)\] to {NAME}", _, 2, 1),
    _t("GAVE_PLAYER", _issued(rf"Gave \d+ \[([^\]]+)\] to {NAME}"), 1, 3, 2),
    _t("PARDON_SERVER", rf"Unbanned {NAME}", _, 1, _),
    _t("PARDON_PLAYER", _issued(rf"Unbanned {NAME}"), 1, 2, _),
    _t("RELOADING_SERVER", r"Reloading!"),
    _t("RELOADING_PLAYER", _issued(r"Reloading!"), 1, _, _),
    _t("OPPED_SERVER", rf"Made {NAME} a server operator", _, 1, _),
    _t("OPPED_PLAYER", _issued(rf"Made {NAME} a server operator"), 1, 2, _),
    _t("SAVED_SERVER", r"Saved the game"),
    _t("SAVED_PLAYER", _issued(r"Saved the game"), 1, _, _),
    _t("SAVING", r"Saving the game \(this may take a moment!\)"),
    _t("TAG_ADD_SERVER", rf"Added tag '([^']+)' to {NAME}", _, 2, 1),
    _t("TAG_ADD_PLAYER", _issued(rf"Added tag '([^']+)' to {NAME}"), 1, 3, 2),
    _t("TAG_REMOVE_SERVER", rf"Removed tag '([^']+)' from {NAME}", _, 2, 1),
    _t("TAG_REMOVE_PLAYER", _issued(rf"Removed tag '([^']+)' from {NAME}"), 1, 3, 2),
    _t("TELEPORT_SERVER", rf"Teleported {NAME} to {NAME}", _, 1, 2),
    _t("TELEPORT_PLAYER", _issued(rf"Teleported {NAME} to {NAME}"), 1, 2, 3),
    _t("TIMESET_SERVER", r"Set the time to (\w+)", _, _, 1),
    _t("TIMESET_PLAYER", _issued(r"Set the time to (\w+)"), 1, _, 2),
    _t("WEATHER_SERVER", rf"Set the weather to {WEATHER}", _, _, 1),
    _t("WEATHER_PLAYER", _issued(rf"Set the weather to {WEATHER}"), 1, _, 2),
    _t("WHITELIST_ADD_SERVER", rf"Added {NAME} to the whitelist", _, 1, _),
    _t("WHITELIST_ADD_PLAYER", _issued(rf"Added {NAME} to the whitelist"), 1, 2, _),
    _t("WHITELIST_REMOVE_SERVER", rf"Removed {NAME} from the whitelist", _, 1, _),
    _t("WHITELIST_REMOVE_PLAYER", _issued(rf"Removed {NAME} from the whitelist"), 1, 2, _),
])


# ── Player lifecycle ────────────────────────────────────────────────────────

PLAYERS = LineTypeSet("PLAYERS", [
    _t("PLAYER_ADVANCEMENT", rf"{NAME} has made the advancement \[(.+)\]", 1, 1, 2),
    _t("PLAYER_JOINED", rf"{NAME} joined the game", 1, _, _),
    _t("PLAYER_LEFT", rf"{NAME} left the game", 1, _, _),
    _t("PLAYER_LOGGED_IN", rf"{NAME}\[(.{{9,}})\] logged in with entity id \d+ at .+", 1, _, 2),
    _t("PLAYER_LOST_CONNECTION", rf"{NAME} lost connection: {ANY}", 1, _, 2),
    _t("PLAYER_SAY_MESSAGE", rf"\[{NAME}\] {ANY}", 1, _, 2),
    _t("PLAYER_SPOKEN_MESSAGE", rf"<{NAME}> {ANY}", 1, _, 2),
    _t("PLAYER_UUID", rf"UUID of player {NAME} is {UUID}", 1, _, 2),
])


# ── Deaths ──────────────────────────────────────────────────────────────────
# _d(name, tail) builds "<victim> <tail>" with the victim as recipient.
#   killer=True  -> tail ends with a second actor, the cause.
#   using="with" -> followed by "with <implement>", kept in sub_contents.

def _d(name: str, tail: str, *, killer: bool = False, using: str | None = None) -> LineType:
    pattern = rf"{NAME} {tail}"
    cause = _
    sub = _
    if killer:
        pattern += rf" {NAME}"
        cause = 2
    if using is not None:
        pattern += rf" {using} {ANY}"
        sub = 3 if killer else 2
    return LineType.build(name, pattern, cause, 1, sub, death=True)


DEATHS = LineTypeSet("DEATHS", [
    _d("DEATH_ARROW", "was shot by arrow"),
    _d("DEATH_SHOT_BOW", "was shot by", killer=True, using="using"),
    _d("DEATH_SHOT", "was shot by", killer=True),
    _d("DEATH_PRICK", "was pricked to death"),
    _d("DEATH_HUG", "hugged a cactus"),
    _d("DEATH_WALK_CAC", "walked into a cactus while trying to escape", killer=True),
    _d("DEATH_DRAGONS_BREATH", "was roasted in dragon breath"),
    _d("DEATH_DRAGONS_BREATH_BY", "was roasted in dragon breath by", killer=True),
    _d("DEATH_DROWNED", "drowned"),
    _d("DEATH_DROWNED_ESC", "drowned whilst trying to escape", killer=True),
    _d("DEATH_SUFFOCATE", "suffocated in a wall"),
    _d("DEATH_SQUISH", "was squished too much"),
    _d("DEATH_SQUASH", "was squashed by", killer=True),
    _d("DEATH_KINETIC", "experienced kinetic energy"),
    _d("DEATH_RMV_ELYTRA", "removed an elytra while flying"),
    _d("DEATH_BLEW_UP", "blew up"),
    _d("DEATH_BLOWN_UP", "was blown up by", killer=True),
    _d("DEATH_GAME_DESIGN", r"was killed by \[Intentional Game Design\]"),
    _d("DEATH_GROUND", "hit the ground too hard"),
    _d("DEATH_FELL_PLACE", "fell from a high place"),
    _d("DEATH_FELL_LAD", "fell off a ladder"),
    _d("DEATH_FELL_VINE", "fell off some vines"),
    _d("DEATH_FELL_WATER", "fell out of the water"),
    _d("DEATH_FELL_FIRE", "fell into a patch of fire"),
    _d("DEATH_FELL_DOOM", "was doomed to fall by", killer=True),
    _d("DEATH_FELL_CAC", "fell into a patch of cacti"),
    _d("DEATH_SHOT_VINE", "was shot off some vines by", killer=True),
    _d("DEATH_SHOT_LAD", "was shot off a ladder by", killer=True),
    _d("DEATH_BLOWN_PLACE", "was blown from a high place by", killer=True),
    _d("DEATH_SQUASH_ANV", "was squashed by a falling anvil"),
    _d("DEATH_SQUASH_ANV_FIGHT", "was squashed by a falling anvil whilst fighting", killer=True),
    _d("DEATH_SQUASH_BLCK", "was squashed by a falling block"),
    _d("DEATH_SQUASH_BLCK_FIGHT", "was squashed by a falling block whilst fighting", killer=True),
    _d("DEATH_FLAMES", "went up in flames"),
    _d("DEATH_BURN", "burned to death"),
    _d("DEATH_CRISP", "was burnt to a crisp whilst fighting", killer=True),
    _d("DEATH_WALK_FIRE", "walked into a fire whilst fighting", killer=True),
    _d("DEATH_BANG", "went off with a bang"),
    _d("DEATH_BANG_FIGHT", "went off with a bang whilst fighting", killer=True),
    _d("DEATH_LAVA", "tried to swim in lava"),
    _d("DEATH_LAVA_ESC", "tried to swim in lava while trying to escape", killer=True),
    _d("DEATH_LIGHT", "was struck by lightning"),
    _d("DEATH_LIGHT_FIGHT", "was struck by lightning whilst fighting", killer=True),
    _d("DEATH_FLOOR_LAVA", "discovered floor was lava"),
    # The victim is not captured for this one, only the cause.
    LineType.build(
        "DEATH_DNGR_ZONE", rf"{NAME} walked into danger zone due to {NAME}", 2, _, _, death=True
    ),
    _d("DEATH_SLAIN", "was slain by", killer=True),
    _d("DEATH_SLAIN_USING", "was slain by", killer=True, using="using"),
    _d("DEATH_FINISH_OFF", "got finished off by", killer=True),
    _d("DEATH_FINISH_OFF_USING", "got finished off by", killer=True, using="using"),
    _d("DEATH_FIREBALL", "was fireballed by", killer=True),
    _d("DEATH_FIREBALL_USING", "was fireballed by", killer=True, using="using"),
    _d("DEATH_MAGIC", "was killed by magic"),
    # Shadows DEATH_KILLED_USING for the implement "magic".
    LineType.build(
        "DEATH_MAGIC_USING", rf"{NAME} was killed by {NAME} using magic", 2, 1, _, death=True
    ),
    _d("DEATH_KILLED_USING", "was killed by", killer=True, using="using"),
    _d("DEATH_STARVE", "starved to death"),
    _d("DEATH_BERRY", "was poked to death by a sweet berry bush"),
    _d("DEATH_BERRY_ESC", "was poked to death by a sweet berry bush whilst trying to escape", killer=True),
    _d("DEATH_HURT_TRY", "was killed while trying to hurt", killer=True),
    LineType.build(
        "DEATH_HURT_TRY_WITH", rf"{NAME} was killed by {ANY} trying to hurt {NAME}", 3, 1, 2, death=True
    ),
    _d("DEATH_IMPALED", "was impaled by", killer=True),
    _d("DEATH_IMPALED_WITH", "was impaled by", killer=True, using="with"),
    _d("DEATH_FELL_WORLD", "fell out of the world"),
    _d("DEATH_FELL_PLC_WRLD", "fell from a high place and fell out of the world"),
    _d("DEATH_LIVE_SAME_WRLD", "didn't want to live in the same world as", killer=True),
    _d("DEATH_WITHERED", "withered away"),
    _d("DEATH_WITHERED_FIGHT", "withered away whilst fighting", killer=True),
    _d("DEATH_PUMMELED", "was pummeled by", killer=True),
    _d("DEATH_PUMMELED_USING", "was pummeled by", killer=True, using="using"),
])


# ── Server ──────────────────────────────────────────────────────────────────

SERVER = LineTypeSet("SERVER", [
    _t("DONE_LOADING", r'Done \((\d+\.\d+)s\)! For help, type "help"', _, _, 1),
])

BUILTIN_SETS = (COMMANDS, PLAYERS, DEATHS, SERVER)


def default_registry() -> LineTypeRegistry:
    """Return a fresh registry holding the built-in sets in priority order."""
    return LineTypeRegistry(BUILTIN_SETS)
