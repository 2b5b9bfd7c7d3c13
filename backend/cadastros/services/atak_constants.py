"""
Constantes do ERP Atak
"""

# Tipos de cadastro geral, na ordem em que a busca por CNPJ é feita
TIPOS_DE_CADASTRO = {
    "B": "CONTAS CAIXA X BANCO",
    "C": "CLIENTE CONSUMIDOR FINAL",
    "D": "PRESTADORES DE SERVIÇOS P.FÍSICA",
    "E": "PRESTADORES DE SERVICO P.JURÍDICA",
    "F": "FORNECEDORES ALMOXARIFADO",
    "G": "CLIENTES MERCADO INTERNO",
    "H": "EMPRESAS DO GRUPO (FILIAIS)",
    "I": "FORNECEDOR REVENDA",
    "J": "FORNECEDOR DIVERSOS",
    "K": "PLANO DE CONTAS",
    "M": "MOTORISTAS",
    "N": "A PAGAR FORNC. DIVERSOS(IMPOSTOS, TAXAS, E OUTROS)",
    "O": "PERFIL PARTICIPANTE",
    "S": "SISTEMA",
    "T": "TRANSPORTADOR",
    "U": "FUNCIONARIO/DEPARTAMENTOS",
    "V": "VENDEDOR",
    "X": "CLIENTES MERCADO EXTERNO",
    "Y": "FORNECEDOR MATERIA PRIMA",
    "Z": "PROSPECT",
}

# Papéis de endereço replicados no cadastro: fiscal, cobrança, entrega, retirada e triagem
PAPEIS_ENDERECO = ["F", "C", "E", "R", "T"]

# Trechos de resposta que indicam token expirado ou sessão em outro terminal
ASSINATURAS_TOKEN_INVALIDO = [
    "Token inválido para o request",
    "TOKEN_INVALIDO_USUARIO_EM_TERMINAL_DIFERENTE",
    "Verifique se o mesmo usuário não está sendo utilizado em um terminal diferente",
    "Token inválido",
    "Unauthorized",
    "TOKEN_INVALIDO",
]

MENSAGEM_JA_CADASTRADO = "Cliente já cadastrado no Atak"

SERVICO = "/servico/integracaoterceiros"
