"""
Seletores do portal SPC, em ordem de prioridade.

Mantidos separados do fluxo de navegação para poderem ser ajustados quando
o portal mudar sem mexer no SpcBot.
"""

OPERADOR = [
    'input[name*="operador"]',
    'input[id*="operador"]',
    'input[placeholder*="operador"]',
    'input[type="text"]',
]

SENHA = [
    'input[name*="senha"]',
    'input[id*="senha"]',
    'input[type="password"]',
]

PALAVRA_SECRETA = [
    'input[placeholder*="palavra"]',
    'input[placeholder*="secreta"]',
    'input[name*="senha"]',
    'input[placeholder*="senha"]',
    'input[type="password"]',
]

AVANCAR = [
    'button:has-text("Avançar")',
    'input[value="Avançar"]',
    'button[type="submit"]',
]

FECHAR_PROPAGANDA = [
    'img[title="Fechar"][alt="Fechar"]',
    'img[src="/spc/images/hsm/close_btn_02.png"]',
    'img[onclick="fecharCampanhaTelaCheia();"]',
    'button[aria-label="Fechar"]',
    'button[title="Fechar"]',
    '.close-button',
    '.modal-close',
    'button:has-text("×")',
    'button:has-text("Fechar")',
]

RECUSAR_CAMPANHA = [
    'a[class="buttonModalNaoIncluir"]',
    'a[onclick*="DecideAction"]',
    'a:has-text("Não quero incluir")',
    'button:has-text("Não quero incluir")',
    'a:has-text("Não incluir")',
    'button:has-text("Não incluir")',
]

CARD_CONSULTAS = [
    'div[class*="card"]:has-text("Consultas")',
    'div[class*="service"]:has-text("Consultas")',
    'div[class*="menu"]:has-text("Consultas")',
    'a:has-text("Consultas")',
    'span:has-text("Consultas")',
    '[id*="consultas"]',
]

MENU_PESSOA_JURIDICA = [
    'text="CONSULTA PESSOA JURÍDICA"',
    'a:has-text("CONSULTA PESSOA JURÍDICA")',
    'span:has-text("CONSULTA PESSOA JURÍDICA")',
    'div:has-text("CONSULTA PESSOA JURÍDICA")',
    'text=PESSOA JURÍDICA',
]

PRODUTO_POSITIVO_AVANCADO = [
    'text="SPC + POSITIVO AVANÇADO PJ"',
    'a:has-text("SPC + POSITIVO AVANÇADO PJ")',
    'span:has-text("SPC + POSITIVO AVANÇADO PJ")',
    'div:has-text("SPC + POSITIVO AVANÇADO PJ")',
    'text=POSITIVO AVANÇADO PJ',
]

CAMPO_CNPJ = [
    'input[name="filtros[0].numeroDocumento"]',
    'input[id="filtros0.numeroDocumento"]',
    'input[onkeypress*="onKeyPressCPFeCNPJ"]',
    'input[onchange*="limparDadosHistoricoPagamentoCP"]',
    'input[name*="cnpj"]',
    'input[placeholder*="CNPJ"]',
    'input[id*="cnpj"]',
]

BOTAO_CONSULTAR = [
    'input[id="btnFilterConsulta"]',
    'input[class*="btn"][value="Consultar"]',
    'input[onclick*="submeterConsulta"]',
    'button:has-text("Consultar")',
    'input[value="Consultar"]',
    'button[type="submit"]',
]

INDICADORES_RESULTADO = [
    'table[class*="table"]',
    'table[class*="result"]',
    'div[class*="result"]',
    'div[class*="consulta"]',
    'div[class*="dados"]',
    'div:has-text("Razão Social")',
    'div:has-text("Nome Fantasia")',
]

INDICADORES_CARREGANDO = [
    '[class*="loading"]',
    '[class*="spinner"]',
    '[class*="carregando"]',
    '[class*="processando"]',
]

CNPJ_INVALIDO = [
    'text="CNPJ inválido"',
    'text="CNPJ inválido."',
    '[class*="error"]:has-text("CNPJ")',
    '[class*="alert"]:has-text("CNPJ")',
    '[class*="modal"]:has-text("CNPJ inválido")',
    'div:has-text("CNPJ inválido")',
]

FECHAR_MODAL = [
    'button:has-text("OK")',
    'button:has-text("Ok")',
    'button:has-text("Fechar")',
    '[role="dialog"] button',
    '.modal button.close',
]

BOTAO_IMPRIMIR = [
    'button:has-text("Imprimir")',
    'a:has-text("Imprimir")',
    'input[value="Imprimir"]',
    '[class*="print"]',
    '[id*="print"]',
]

DIALOGO_SALVAR = [
    'button:has-text("Salvar")',
    'button span:has-text("Salvar")',
    'input[value="Salvar"]',
    'button:has-text("Save")',
]
