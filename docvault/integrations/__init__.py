"""DocVault Integrations — Blob storage, notification dispatch, directory lookups."""
