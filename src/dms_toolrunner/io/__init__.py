"""Readers and writers for console output, spectra and parameter files."""
