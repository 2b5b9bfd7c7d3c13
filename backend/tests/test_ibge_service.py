"""
Testes da busca de código IBGE nas planilhas locais
"""
import pandas as pd
import pytest

from cadastros.services.ibge_service import IbgeService


def _linha(codigo, nome):
    # colunas A..G da DTB não são usadas na busca
    return ["x"] * 7 + [codigo, nome]


@pytest.fixture
def pasta_ibge(tmp_path):
    pasta = tmp_path / "codIBGE"
    pasta.mkdir()
    df = pd.DataFrame([
        ["UF", "Nome_UF", "RG", "Nome_RG", "RGI", "Nome_RGI", "Mun", "Código Município Completo", "Nome_Município"],
        _linha("1302603", "Manaus"),
        _linha("3550308", "São Paulo"),
        _linha("3304557", "Rio de Janeiro"),
        _linha("2611606", "Recife"),
        _linha("3170206", "Uberlândia"),
        _linha("4314902", "Porto Alegre"),
        _linha("1100205", "Porto Velho"),
    ])
    df.to_excel(pasta / "RELATORIO_DTB_BRASIL_MUNICIPIO.xlsx", header=False, index=False)
    return pasta


def test_busca_exata(pasta_ibge):
    servico = IbgeService(str(pasta_ibge))
    assert servico.buscar_codigo("Manaus", "AM") == "1302603"
    assert servico.buscar_codigo("  são paulo ", "SP") == "3550308"


def test_busca_parcial_respeita_uf(pasta_ibge):
    servico = IbgeService(str(pasta_ibge))
    # "PORTO" casa com Porto Alegre e Porto Velho; a UF desempata
    assert servico.buscar_codigo("Porto", "RO") == "1100205"
    assert servico.buscar_codigo("Porto", "RS") == "4314902"


def test_uf_divergente(pasta_ibge):
    servico = IbgeService(str(pasta_ibge))
    assert servico.buscar_codigo("Manaus", "SP") is None


def test_cidade_desconhecida_e_cache(pasta_ibge):
    servico = IbgeService(str(pasta_ibge))
    assert servico.buscar_codigo("Cidade Inexistente", "AM") is None
    assert ("CIDADE INEXISTENTE", "AM") in servico._cache


def test_resultado_em_cache(pasta_ibge, monkeypatch):
    servico = IbgeService(str(pasta_ibge))
    assert servico.buscar_codigo("Recife", "PE") == "2611606"

    def nao_deve_ler(*args, **kwargs):
        raise AssertionError("planilha relida")

    monkeypatch.setattr(servico, "_procurar", nao_deve_ler)
    assert servico.buscar_codigo("recife", "pe") == "2611606"

    servico.limpar_cache()
    with pytest.raises(AssertionError):
        servico.buscar_codigo("Recife", "PE")


def test_pasta_inexistente(tmp_path):
    servico = IbgeService(str(tmp_path / "nao_existe"))
    assert servico.buscar_codigo("Manaus", "AM") is None
    assert servico.buscar_codigo(None) is None
