"""
Testes do parser da resposta da TESS
"""
from cadastros.services.tess_parser import encontrar_json, parse_resposta_tess, remover_nulos


RESPOSTA_COM_BLOCO = """Segue a extração do relatório:

```json
{
  "consulta": {"operador": "123", "protocolo": "ABC-1"},
  "empresa": {
    "cnpj": "17.283.362/0001-30",
    "razao_social": "ACME COMERCIO LTDA",
    "capital_social": 150000.5,
    "endereco": {"logradouro": "RUA DAS FLORES", "numero": 100, "cidade": "MANAUS", "estado": "AM"},
    "telefones": {"fixos": ["(92) 3333-4444"], "celulares": []},
    "emails": ["contato@acme.com.br"]
  },
  "controle_societario": [
    {"cpf": "123.456.789-09", "nome": "JOAO DA SILVA", "participacao": {"percentual": 50}}
  ],
  "score_credito": {"score": 780, "risco": "BAIXO"},
  "scr": null
}
```

Qualquer dúvida estou à disposição."""

RESPOSTA_TEXTO = """Razão Social: ACME COMERCIO LTDA
Nome Fantasia: ACME
Situação: ATIVA
Endereço: RUA DAS FLORES, 100
Município: MANAUS
UF: AM
CEP: 69000-000
Telefone: (92) 3333-4444
E-mail: contato@acme.com.br

Controle Societário
123.456.789-09 | JOAO DA SILVA | Participação: 50%
987.654.321-00 | MARIA SOUZA | Participação: 50%

Quadro Administrativo
123.456.789-09 | JOAO DA SILVA | Cargo: ADMINISTRADOR
"""


def test_bloco_json_cercado():
    documento = parse_resposta_tess(RESPOSTA_COM_BLOCO)

    assert documento.metodo_extracao == "json"
    assert documento.empresa.razao_social == "ACME COMERCIO LTDA"
    assert documento.empresa.endereco.numero == "100"
    assert documento.empresa.endereco.estado == "AM"
    assert documento.empresa.telefones.fixos == ["(92) 3333-4444"]
    assert documento.controle_societario[0].nome == "JOAO DA SILVA"
    assert documento.score_credito.risco == "BAIXO"
    # seção nula volta com os defaults
    assert documento.scr.garantias.tipos == []


def test_json_sem_cerca_usa_busca_gulosa():
    texto = 'Resultado: {"empresa": {"razao_social": "ACME", "endereco": {"cidade": "MANAUS"}}} fim'
    documento = parse_resposta_tess(texto)

    assert documento.metodo_extracao == "json"
    assert documento.empresa.razao_social == "ACME"
    assert documento.empresa.endereco.cidade == "MANAUS"


def test_fallback_regex():
    documento = parse_resposta_tess(RESPOSTA_TEXTO)

    assert documento.metodo_extracao == "regex"
    empresa = documento.empresa
    assert empresa.razao_social == "ACME COMERCIO LTDA"
    assert empresa.nome_fantasia == "ACME"
    assert empresa.situacao_cnpj == "ATIVA"
    assert empresa.endereco.logradouro == "RUA DAS FLORES, 100"
    assert empresa.endereco.cidade == "MANAUS"
    assert empresa.endereco.estado == "AM"
    assert empresa.endereco.cep == "69000-000"
    assert empresa.telefones.fixos == ["(92) 3333-4444"]
    assert empresa.emails == ["contato@acme.com.br"]


def test_fallback_regex_socios_e_administradores():
    documento = parse_resposta_tess(RESPOSTA_TEXTO)

    socios = documento.controle_societario
    assert [s.cpf for s in socios] == ["123.456.789-09", "987.654.321-00"]
    assert socios[0].nome == "JOAO DA SILVA"
    assert socios[1].participacao.percentual == "50"

    administradores = documento.quadro_administrativo
    assert len(administradores) == 1
    assert administradores[0].cargo == "ADMINISTRADOR"


def test_resposta_sem_dados():
    documento = parse_resposta_tess("Não foi possível processar o documento.")
    assert documento.metodo_extracao == "vazio"
    assert documento.empresa.razao_social is None


def test_resposta_vazia_nunca_levanta():
    assert parse_resposta_tess(None).metodo_extracao == "vazio"
    assert parse_resposta_tess("   ").metodo_extracao == "vazio"


def test_json_invalido_cai_no_regex():
    texto = "```json\n{\"empresa\": \n```\nRazão Social: ACME LTDA"
    documento = parse_resposta_tess(texto)
    assert documento.metodo_extracao == "regex"
    assert documento.empresa.razao_social == "ACME LTDA"


def test_encontrar_json_ignora_lista():
    assert encontrar_json("[1, 2, 3]") is None


def test_remover_nulos():
    assert remover_nulos({"a": None, "b": {"c": None, "d": 1}, "e": [None, 2]}) == {"b": {"d": 1}, "e": [2]}


def test_campo_fora_do_formato_nao_descarta_o_documento():
    texto = (
        '```json\n{"empresa": {"razao_social": "ACME LTDA", "emails": "a@b.com"},'
        ' "controle_societario": [{"cpf": "123.456.789-00", "nome": "JOAO"}]}\n```'
    )
    documento = parse_resposta_tess(texto)

    assert documento.metodo_extracao == "json"
    assert documento.empresa.razao_social == "ACME LTDA"
    assert documento.empresa.emails == ["a@b.com"]
    assert len(documento.controle_societario) == 1
    assert documento.controle_societario[0].nome == "JOAO"


def test_objeto_unico_vira_lista_e_campos_invalidos_sao_ignorados():
    texto = """{
      "empresa": {"razao_social": "ACME LTDA", "endereco": "RUA A, 10", "telefones": "(92) 3333-4444",
                  "porte": {"codigo": 1}},
      "controle_societario": {"cpf": "123.456.789-00", "nome": "JOAO", "participacao": [50]},
      "quadro_administrativo": ["texto solto", {"nome": "MARIA", "cargo": "DIRETORA"}],
      "score_credito": "780"
    }"""
    documento = parse_resposta_tess(texto)

    assert documento.metodo_extracao == "json"
    assert documento.empresa.razao_social == "ACME LTDA"
    assert documento.empresa.porte is None
    assert documento.empresa.endereco.logradouro is None
    assert documento.empresa.telefones.fixos == ["(92) 3333-4444"]

    assert [s.nome for s in documento.controle_societario] == ["JOAO"]
    assert documento.controle_societario[0].participacao.percentual is None
    assert [a.nome for a in documento.quadro_administrativo] == ["MARIA"]
    assert documento.score_credito.score is None
