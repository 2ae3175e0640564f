"""Domain types and the date/expiry rules shared by upload and listing."""
