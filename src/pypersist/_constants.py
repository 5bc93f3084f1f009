"""Internal constants shared across the library."""

DEFAULT_PREFIX = "reduxPersist:"
REHYDRATE = "REHYDRATE"

# Action types dispatched by the bundled ReducerStore itself.
INIT_ACTION = "@@pypersist/INIT"
REPLACE_ACTION = "@@pypersist/REPLACE"

LOG_TAG = "Persist:"
