"""Wire-level decoding: line framing and event classification."""
