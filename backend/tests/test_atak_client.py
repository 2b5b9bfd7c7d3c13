"""
Testes do cliente Atak
"""
import asyncio
import json

import httpx
import pytest

from cadastros.core.exceptions import ConfigError
from cadastros.schemas.registro import EnderecoPartes, RegistroConsolidado
from cadastros.services.atak_client import (
    AtakClient,
    extrair_mensagem_erro,
    indicador_micro_empresa,
    mapear_situacao,
)
from cadastros.services.atak_constants import MENSAGEM_JA_CADASTRADO, PAPEIS_ENDERECO, SERVICO
from conftest import make_settings

CNPJ = "17283362000130"


class IbgeFake:
    def __init__(self, codigo="3550308"):
        self.codigo = codigo
        self.chamadas = []

    def buscar_codigo(self, cidade, uf=None):
        self.chamadas.append((cidade, uf))
        return self.codigo


def _config(**overrides):
    valores = {
        "ATAK_ENABLED": True,
        "ATAK_USERNAME": "integracao",
        "ATAK_PASSWORD": "senha",
        "ATAK_BASE_URL": "https://atak.example.com",
    }
    valores.update(overrides)
    return make_settings(**valores)


def _registro(**overrides):
    dados = {
        "cnpj": CNPJ,
        "razao_social": "ACME COMERCIO LTDA",
        "nome_fantasia": "ACME",
        "situacao": "ATIVA",
        "porte": "MICROEMPRESA",
        "inscricao_estadual": "222222222",
        "inscricao_suframa": None,
        "telefones": ["(11) 3333-4444"],
        "emails": ["contato@acme.com.br"],
        "endereco": EnderecoPartes(
            logradouro="Rua das Flores",
            numero="100",
            complemento="Sala 2",
            bairro="Centro",
            cidade="São Paulo",
            estado="sp",
            cep="01001-000",
            latitude=-23.55,
            longitude=-46.63,
        ),
    }
    dados.update(overrides)
    return RegistroConsolidado(**dados)


class AtakFake:
    """
    Atak em memória.
    `encontrado_em` indica o tipo de cadastro em que o CNPJ já existe.
    """

    def __init__(self, encontrado_em=None, sempre_401=False, cadastro_response=None):
        self.encontrado_em = encontrado_em
        self.sempre_401 = sempre_401
        self.cadastro_response = cadastro_response or httpx.Response(200, json={"ID": 555})
        self.requests = []
        self.logins = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/auth-integracao.axd":
            self.logins += 1
            return httpx.Response(200, json=f"token-{self.logins}")

        if self.sempre_401:
            return httpx.Response(401, text="Unauthorized")

        if path.startswith(f"{SERVICO}/ObterCadastrosGerais/"):
            tipo = path.split("/")[-2]
            if tipo == self.encontrado_em:
                return httpx.Response(200, json=[{"ID": 321, "RazaoSocial": "ACME"}])
            return httpx.Response(200, json=[])

        if path == f"{SERVICO}/CadastroGeral":
            return self.cadastro_response

        if path == f"{SERVICO}/ObterCadastroGeralPorId/321":
            return httpx.Response(200, json={"ID": 321, "RazaoSocial": "ACME"})

        if path == f"{SERVICO}/EditarCadastroGeral":
            return httpx.Response(200, json={"IsSuccessStatusCode": True})

        return httpx.Response(404, text="não encontrado")

    def buscas(self):
        return [r for r in self.requests if "ObterCadastrosGerais" in r.url.path]


def _cliente(fake, config=None, ibge=None, sleep=None):
    async def sem_espera(_):
        return None

    return AtakClient(
        config or _config(),
        transport=httpx.MockTransport(fake),
        ibge=ibge or IbgeFake(),
        sleep=sleep or sem_espera,
    )


def test_token_rejeitado_reautentica_uma_vez():
    """Token sempre recusado: um login e duas chamadas, depois erro"""
    fake = AtakFake(sempre_401=True)
    cliente = _cliente(fake, _config(ATAK_TOKEN="token-antigo"))

    result = asyncio.run(cliente.registrar_empresa(_registro()))

    assert not result.success
    assert "rejeitado após reautenticação" in result.error
    assert fake.logins == 1
    assert len(fake.buscas()) == 2
    assert fake.buscas()[0].headers["Authorization"] == "Bearer token-antigo"
    assert fake.buscas()[1].headers["Authorization"] == "Bearer token-1"
    assert not any(r.url.path.endswith("/CadastroGeral") for r in fake.requests)


def test_login_quando_nao_ha_token():
    fake = AtakFake()
    cliente = _cliente(fake)

    asyncio.run(cliente.registrar_empresa(_registro()))

    assert fake.requests[0].url.path == "/auth-integracao.axd"
    login = json.loads(fake.requests[0].content)
    assert login == {"usuario": "integracao", "senha": "senha", "idDispositivo": None, "idAplicativo": 0}
    assert cliente.token == "token-1"


def test_cliente_ja_cadastrado_nao_cria():
    fake = AtakFake(encontrado_em="D")
    result = asyncio.run(_cliente(fake).registrar_empresa(_registro()))

    assert result.success
    assert result.data["ja_cadastrado"] is True
    assert result.data["cliente_id"] == 321
    assert result.data["mensagem"] == MENSAGEM_JA_CADASTRADO

    tipos = [r.url.path.split("/")[-2] for r in fake.buscas()]
    assert tipos == ["B", "C", "D"]
    assert not any(r.url.path.endswith("/CadastroGeral") for r in fake.requests)


def test_cadastro_de_empresa_nova():
    fake = AtakFake()
    result = asyncio.run(_cliente(fake).registrar_empresa(_registro()))

    assert result.success
    assert result.data == {
        "cliente_id": 555,
        "ja_cadastrado": False,
        "mensagem": "Empresa cadastrada no Atak",
        "resposta": {"ID": 555},
    }
    assert len(fake.buscas()) == 20
    cadastro = [r for r in fake.requests if r.url.path.endswith("/CadastroGeral")]
    assert len(cadastro) == 1
    assert cadastro[0].method == "POST"


def test_erro_no_cadastro_nao_e_repetido():
    resposta = httpx.Response(
        500, text="~EXCEPTION_MESSAGE(1) CNPJ com inscrição estadual inválida~"
    )
    fake = AtakFake(cadastro_response=resposta)
    result = asyncio.run(_cliente(fake).registrar_empresa(_registro()))

    assert not result.success
    assert "CNPJ com inscrição estadual inválida" in result.error
    assert sum(1 for r in fake.requests if r.url.path.endswith("/CadastroGeral")) == 1


def test_sem_configuracao():
    cliente = _cliente(AtakFake(), config=make_settings())
    assert not cliente.configurado
    with pytest.raises(ConfigError):
        asyncio.run(cliente.autenticar())


class TestMontarPayload:
    def setup_method(self):
        self.ibge = IbgeFake()
        self.cliente = _cliente(AtakFake(), ibge=self.ibge)

    def test_campos_principais(self):
        payload = self.cliente.montar_payload(_registro())

        assert payload["cpfCnpj"] == CNPJ
        assert payload["tipoDePessoa"] == "J"
        assert payload["RazaoSocial"] == "ACME COMERCIO LTDA"
        assert payload["nomeFantasia"] == "ACME"
        assert payload["tipoDeCadastro"] == "G"
        assert payload["CodigoDaFilial"] == "001"
        assert payload["codigoDaSituacao"] == "A"
        assert payload["codigoDoRamoDaAtividade"] == "037"
        assert payload["identificadorEstadual"] == 1
        assert payload["indicadorMicroEmpresa"] == "S"
        assert payload["uf"] == "SP"
        assert payload["Financeiro"]["CodigoDaCarteira"] == 101
        assert self.ibge.chamadas == [("São Paulo", "SP")]

    def test_papeis_de_endereco(self):
        enderecos = self.cliente.montar_payload(_registro())["Enderecos"]

        for papel in PAPEIS_ENDERECO:
            assert enderecos[f"UF{papel}"] == "SP"
            assert enderecos[f"ConteudoEndereco{papel}"] == "Rua das Flores"
            assert enderecos[f"CodigoIBGECidade{papel}"] == "3550308"
            assert enderecos[f"CEP{papel}"] == "01001000"
            assert enderecos[f"Telefone{papel}"] == "1133334444"
            assert enderecos[f"Numero{papel}"] == "100"
        assert enderecos["IdDoPaisF"] == "BR"
        assert enderecos["LatitudeF"] == "-23.55"

    def test_sem_inscricao_estadual_e_sem_coordenadas(self):
        registro = _registro(
            inscricao_estadual=None,
            endereco=EnderecoPartes(logradouro="Rua A", cidade="Manaus", estado="AM"),
        )
        payload = self.cliente.montar_payload(registro)

        assert payload["identificadorEstadual"] == 9
        assert "LatitudeF" not in payload["Enderecos"]


def test_atualizar_dados_financeiros():
    fake = AtakFake()
    result = asyncio.run(
        _cliente(fake).atualizar_dados_financeiros(321, "ACME", condicao_pagamento="30DD", limite_credito=5000.0)
    )

    assert result.success
    edicao = [r for r in fake.requests if r.url.path.endswith("/EditarCadastroGeral")][0]
    assert edicao.method == "PUT"
    corpo = json.loads(edicao.content)
    assert corpo["ID"] == 321
    assert corpo["CodCondicaoPagamento"] == "30DD"
    assert corpo["LimiteCredito"] == 5000.0


@pytest.mark.parametrize("situacao,codigo", [
    (None, "A"),
    ("ATIVA", "A"),
    ("Ativa", "A"),
    ("INATIVA", "I"),
    ("BAIXADA", "I"),
    ("SUSPENSA", "B"),
    ("B", "B"),
    ("DESCONHECIDA", "A"),
])
def test_mapear_situacao(situacao, codigo):
    assert mapear_situacao(situacao) == codigo


def test_indicador_micro_empresa():
    assert indicador_micro_empresa("Microempresa") == "S"
    assert indicador_micro_empresa("Empresa de Pequeno Porte") == "S"
    assert indicador_micro_empresa("DEMAIS") == "N"
    assert indicador_micro_empresa(None) == "N"


def test_extrair_mensagem_erro():
    assert extrair_mensagem_erro({"Content": "Cadastro duplicado"}) == "Cadastro duplicado"
    assert extrair_mensagem_erro("~EXCEPTION_MESSAGE(99) Falha interna~") == "Falha interna"
    assert extrair_mensagem_erro("texto simples ") == "texto simples"


def test_obter_cliente():
    fake = AtakFake()
    cliente = _cliente(fake)

    encontrado = asyncio.run(cliente.obter_cliente(321))
    assert encontrado.success
    assert encontrado.data["RazaoSocial"] == "ACME"

    ausente = asyncio.run(cliente.obter_cliente(999))
    assert not ausente.success
    assert ausente.error == "Cliente 999 não encontrado no Atak"
    assert ausente.attempts == 1
