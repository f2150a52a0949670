"""Constants, exceptions, data models and formatting shared by every layer."""
