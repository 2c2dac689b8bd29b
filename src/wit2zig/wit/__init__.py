"""World, interface and type model, plus its YAML loader."""
