"""StreamPay core: signed event log, canonical encoding, errors."""
