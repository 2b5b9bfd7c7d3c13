"""
Testes da camada de persistência em SQLite em memória
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from cadastros.core.exceptions import PersistenceError
from cadastros.models import (
    ClientRegistration,
    Consulta,
    ConsultaEmpresa,
    DadosContato,
    Empresa,
    Endereco,
    Ocorrencias,
    QuadroAdministrativo,
    RegistrationStatus,
    ScoreCredito,
    Scr,
    Socio,
    TipoGarantia,
)
from cadastros.schemas.registro import EnderecoPartes, RegistroConsolidado
from cadastros.schemas.stage import StageResult
from cadastros.schemas.tess import TessDocumento
from cadastros.services.persistence import (
    OPERADOR_PADRAO,
    PRODUTO_PADRAO,
    RAZAO_SOCIAL_PADRAO,
    PersistenceLayer,
)

CNPJ = "17283362000130"


def _registro(**overrides):
    dados = {
        "cnpj": CNPJ,
        "razao_social": "ACME COMERCIO LTDA",
        "nome_fantasia": "ACME",
        "situacao": "ATIVA",
        "data_abertura": "01/03/2012",
        "capital_social": "R$ 150.000,00",
        "telefones": ["(11) 3333-4444"],
        "emails": ["contato@acme.com.br"],
        "endereco": EnderecoPartes(logradouro="Rua das Flores", numero="100", cidade="São Paulo", estado="sp"),
        "endereco_completo": "Rua das Flores, 100, São Paulo, sp",
        "fonte_endereco": "tess",
        "resposta_tess": "texto da TESS",
    }
    dados.update(overrides)
    return RegistroConsolidado(**dados)


def _documento(socios=None, **extra):
    dados = {
        "consulta": {"operador": "123456", "data_hora": "10/01/2024 09:30", "protocolo": "PRT-1"},
        "ocorrencias": {"score_pj": "Sim", "controle_societario": 1, "historico_scr": "Não"},
        "controle_societario": socios if socios is not None else [
            {"cpf": "123.456.789-09", "nome": "JOAO DA SILVA", "participacao": {"percentual": "50%", "valor": "75.000,00"}},
            {"cpf": "11.222.333/0001-81", "nome": "HOLDING LTDA", "participacao": {"percentual": 50}},
        ],
        "quadro_administrativo": [{"cpf": "123.456.789-09", "nome": "JOAO DA SILVA", "cargo": "ADMINISTRADOR"}],
        "score_credito": {"score": "780", "risco": "BAIXO", "probabilidade_inadimplencia": "2,5%"},
        "limite_credito": {"valor": "R$ 10.000,00"},
        "scr": {"quantidade_operacoes": 3, "garantias": {"quantidade_maxima": 2, "tipos": ["AVAL", "IMÓVEL"]}},
        "consultas": {"registros": [{"data_hora": "05/01/2024", "associado": "BANCO X", "cidade": "SP"}]},
    }
    dados.update(extra)
    return TessDocumento.model_validate(dados)


class TestPersistenceLayer:
    @pytest.fixture(autouse=True)
    def _setup(self, session_factory):
        self.session_factory = session_factory
        self.layer = PersistenceLayer(session_factory)

    def _contar(self, modelo):
        session = self.session_factory()
        try:
            return session.query(modelo).count()
        finally:
            session.close()

    def test_salvar_grava_todas_as_tabelas(self):
        ids = self.layer.salvar(
            _registro(), _documento(), arquivo_pdf="downloads/a.pdf",
            tess_file_id="99", tess_creditos=1.5, cnpja_unidades=2,
        )

        session = self.session_factory()
        empresa = session.query(Empresa).one()
        assert ids["empresa_id"] == empresa.id
        assert empresa.razao_social == "ACME COMERCIO LTDA"
        assert empresa.capital_social == Decimal("150000.00")
        assert empresa.fundacao.isoformat() == "2012-03-01"
        assert empresa.telefone == "(11) 3333-4444"

        consulta = session.query(Consulta).one()
        assert consulta.operador == "123456"
        assert consulta.produto == PRODUTO_PADRAO
        assert consulta.id == ids["consulta_id"]

        vinculo = session.query(ConsultaEmpresa).one()
        assert vinculo.tess_file_id == "99"
        assert vinculo.cnpja_unidades == 2
        assert vinculo.tess_resposta == "texto da TESS"

        endereco = session.query(Endereco).one()
        assert endereco.estado == "SP"
        assert endereco.latitude == 0

        contato = session.query(DadosContato).one()
        assert contato.telefones_fixos == ["(11) 3333-4444"]
        assert contato.emails == ["contato@acme.com.br"]

        ocorrencias = session.query(Ocorrencias).one()
        assert ocorrencias.score_pj == 1
        assert ocorrencias.historico_scr == 0

        socios = session.query(Socio).order_by(Socio.id).all()
        assert [s.tipo_pessoa for s in socios] == ["F", "J"]
        assert socios[0].percentual_participacao == Decimal("50")
        assert socios[0].valor_participacao == Decimal("75000.00")

        assert session.query(QuadroAdministrativo).one().cargo == "ADMINISTRADOR"
        score = session.query(ScoreCredito).one()
        assert score.score == 780
        assert score.limite_credito_valor == Decimal("10000.00")

        scr = session.query(Scr).one()
        assert sorted(t.tipo_garantia for t in session.query(TipoGarantia).filter_by(id_scr=scr.id)) == ["AVAL", "IMÓVEL"]

        registro = session.query(ClientRegistration).one()
        assert registro.status == RegistrationStatus.CONSULTADO.value
        assert registro.empresa_id == empresa.id
        session.close()

    def test_salvar_duas_vezes_mantem_uma_empresa(self):
        primeiro = self.layer.salvar(_registro(), _documento())
        segundo = self.layer.salvar(
            _registro(nome_fantasia=None, situacao="SUSPENSA"),
            _documento(socios=[{"cpf": "987.654.321-00", "nome": "MARIA SOUZA"}]),
        )

        assert primeiro["empresa_id"] == segundo["empresa_id"]
        assert primeiro["consulta_id"] != segundo["consulta_id"]
        assert self._contar(Empresa) == 1
        assert self._contar(Consulta) == 2
        assert self._contar(ConsultaEmpresa) == 2
        assert self._contar(Endereco) == 1
        assert self._contar(DadosContato) == 1
        assert self._contar(ScoreCredito) == 1
        assert self._contar(TipoGarantia) == 2

        session = self.session_factory()
        empresa = session.query(Empresa).one()
        assert empresa.situacao_cnpj == "SUSPENSA"
        # valor ausente na nova consulta não apaga o anterior
        assert empresa.nome_fantasia == "ACME"
        assert [s.nome for s in session.query(Socio).all()] == ["MARIA SOUZA"]
        session.close()

    def test_registro_minimo(self):
        registro = RegistroConsolidado(cnpj=CNPJ)
        self.layer.salvar(registro)

        session = self.session_factory()
        assert session.query(Empresa).one().razao_social == RAZAO_SOCIAL_PADRAO
        assert session.query(Consulta).one().operador == OPERADOR_PADRAO
        session.close()
        # sem logradouro e sem cidade não há linha de endereço; seções vazias são ignoradas
        assert self._contar(Endereco) == 0
        assert self._contar(ScoreCredito) == 0
        assert self._contar(Scr) == 0
        assert self._contar(Socio) == 0

    def test_falha_desfaz_a_transacao_inteira(self, monkeypatch):
        def falhar(*args, **kwargs):
            raise SQLAlchemyError("disco cheio")

        monkeypatch.setattr(self.layer, "_salvar_score", falhar)

        with pytest.raises(PersistenceError, match="score_credito"):
            self.layer.salvar(_registro(), _documento())

        assert self._contar(Empresa) == 0
        assert self._contar(Consulta) == 0
        assert self._contar(Socio) == 0
        assert self._contar(ClientRegistration) == 0

    def test_resultado_atak(self):
        self.layer.salvar(_registro(), _documento())

        self.layer.salvar_resultado_atak(
            CNPJ, StageResult.ok({"cliente_id": 555, "ja_cadastrado": False, "resposta": {"ID": 555}})
        )
        session = self.session_factory()
        registro = session.query(ClientRegistration).one()
        assert registro.status == RegistrationStatus.CADASTRADO_ATAK.value
        assert registro.atak_cliente_id == 555
        assert registro.atak_data_cadastro is not None
        session.close()

        self.layer.salvar_resultado_atak(CNPJ, StageResult.fail("Token do Atak rejeitado"))
        session = self.session_factory()
        registro = session.query(ClientRegistration).one()
        assert registro.status == RegistrationStatus.ERRO_ATAK.value
        assert registro.atak_erro == "Token do Atak rejeitado"
        session.close()
        # erro no Atak não desfaz a empresa
        assert self._contar(Empresa) == 1

    def test_cliente_ja_cadastrado(self):
        self.layer.salvar(_registro(), _documento())
        self.layer.salvar_resultado_atak(CNPJ, StageResult.ok({"cliente_id": 321, "ja_cadastrado": True}))

        session = self.session_factory()
        assert session.query(ClientRegistration).one().status == RegistrationStatus.JA_CADASTRADO_ATAK.value
        session.close()
