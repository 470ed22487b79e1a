"""HTTP exposition of metrics, source status and engine logs."""
