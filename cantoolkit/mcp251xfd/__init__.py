"""Loading and text decoding of MCP2517FD/MCP2518FD state from coredumps and regmap files."""