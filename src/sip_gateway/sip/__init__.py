"""FreeSWITCH and call-file endpoints."""
