"""RavenSync exception hierarchy.

Typed exceptions for every error category the engine distinguishes. Read
paths catch these (and transport errors) and degrade to empty results; write
paths let them reach the caller.

Exception hierarchy:

```text
RavenSyncError (base -- never raised directly)
├── ConfigurationError       -- config validation, bad YAML, bad relay list
├── ConnectivityError        -- relay unreachable, network failures
│   ├── RelayTimeoutError    -- connection or response timed out
│   └── RelayNotFoundError   -- no live relay is known to hold an event
├── ProtocolError            -- malformed or undecodable relay data
│   └── DecryptionError      -- direct message could not be decrypted
├── CapabilityError          -- operation not possible in the current setup
│   ├── CannotPublishError   -- no signer, or a synthetic identity
│   └── NoWriteRelaysError   -- no live write relay to publish to
└── PublishingError          -- event broadcast failures
    └── SigningError         -- the signer failed to sign
```

See Also:
    [Publisher][ravensync.engine.publisher.Publisher]: Raises the capability
        and publishing errors.
    [BackgroundSyncBridge][ravensync.engine.bridge.BackgroundSyncBridge]:
        Raises [RelayNotFoundError][ravensync.core.exceptions.RelayNotFoundError].
    [BaseService][ravensync.core.base_service.BaseService]: Catches
        [RavenSyncError][ravensync.core.exceptions.RavenSyncError] subclasses
        in the
        [run_forever()][ravensync.core.base_service.BaseService.run_forever]
        loop.
"""

from __future__ import annotations


class RavenSyncError(Exception):
    """Base exception for all RavenSync errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(RavenSyncError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [load_yaml()][ravensync.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(RavenSyncError):
    """Base for all relay/network connectivity errors."""


class RelayTimeoutError(ConnectivityError):
    """Connection or response timed out.

    See Also:
        [NostrSdkPool.connect()][ravensync.utils.protocol.NostrSdkPool.connect]:
            Records the relay as failed when its handshake times out.
    """


class RelayNotFoundError(ConnectivityError):
    """No live relay could be found for a given event id.

    See Also:
        [BackgroundSyncBridge.locate_relay()][ravensync.engine.bridge.BackgroundSyncBridge.locate_relay]:
            The resolver that raises this error.
    """


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(RavenSyncError):
    """Malformed, unparseable, or otherwise unusable relay data."""


class DecryptionError(ProtocolError):
    """A direct message could not be decrypted.

    Raised by
    [ReconstructionPipeline.open_message()][ravensync.engine.reconstruction.ReconstructionPipeline.open_message].
    Never escapes batch processing: the message is kept with its ciphertext
    and ``decrypted=False``.
    """


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


class CapabilityError(RavenSyncError):
    """The requested operation is not possible with the current identity or relays.

    Raised before any network I/O is attempted.
    """


class CannotPublishError(CapabilityError):
    """No signer is configured, or its identity is synthetic."""


class NoWriteRelaysError(CapabilityError):
    """The write relay set is unavailable."""


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(RavenSyncError):
    """Failed to broadcast a Nostr event to relays.

    See Also:
        [ConnectivityError][ravensync.core.exceptions.ConnectivityError]:
            Lower-level connectivity errors that may cause publishing
            failures.
    """


class SigningError(PublishingError):
    """The signer failed to produce a signed event."""
