"""Pipeline de cadastro de clientes: SPC, TESS, CNPJÁ, banco e Atak."""

__version__ = "1.0.0"
