"""
Persistência do registro consolidado.

Tudo de um CNPJ é gravado numa única transação: qualquer falha em uma
sub-entidade é logada com contexto, a transação inteira é desfeita e
PersistenceError sobe para o chamador.

- empresa: upsert por CNPJ (id estável)
- consulta, consulta_empresa, consultas_realizadas: append
- endereco, dados_contato e seções opcionais: atualiza a última linha ou insere
- socios, quadro_administrativo, tipos_garantias: apaga e recria
"""
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cadastros.core.database import SessionLocal
from cadastros.core.exceptions import PersistenceError
from cadastros.core.logging import log_database_query
from cadastros.models import (
    ClientRegistration,
    Consulta,
    ConsultaEmpresa,
    ConsultaRealizada,
    DadosContato,
    Empresa,
    Endereco,
    HistoricoPagamentoPositivo,
    Ocorrencias,
    QuadroAdministrativo,
    RegistrationStatus,
    ScoreCredito,
    Scr,
    Socio,
    TipoGarantia,
)
from cadastros.schemas.registro import RegistroConsolidado
from cadastros.schemas.stage import StageResult
from cadastros.schemas.tess import TessDocumento
from cadastros.utils.coercion import (
    int_flag,
    normalizar_uf,
    parse_data,
    parse_float,
    parse_int,
    parse_moeda,
    parse_somente_data,
    somente_digitos,
    texto,
    vazio,
)

logger = logging.getLogger(__name__)

OPERADOR_PADRAO = "Sistema"
PRODUTO_PADRAO = "SPC + POSITIVO AVANÇADO PJ"
PROTOCOLO_PADRAO = "N/A"
RAZAO_SOCIAL_PADRAO = "Empresa não identificada"


def _tudo_vazio(valores: List[Any]) -> bool:
    return all(vazio(v) for v in valores)


def _atualizar(objeto, campos: Dict[str, Any], somente_preenchidos: bool = False):
    for campo, valor in campos.items():
        if somente_preenchidos and valor is None:
            continue
        setattr(objeto, campo, valor)


class PersistenceLayer:
    """Grava o resultado do pipeline no banco relacional"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _etapa(self, cnpj: str, tabela: str, funcao: Callable[[], Any]) -> Any:
        """Executa uma etapa e converte falhas em PersistenceError com contexto"""
        try:
            return funcao()
        except PersistenceError:
            raise
        except (SQLAlchemyError, ValueError, TypeError, ArithmeticError) as e:
            logger.error(
                f"[DB] Falha ao gravar {tabela} do CNPJ {cnpj}: {e}",
                extra={"database": {"table": tabela, "cnpj": cnpj}},
            )
            raise PersistenceError(f"Falha ao gravar {tabela}: {e}", "DB") from e

    # ------------------------------------------------------------------
    # Raiz
    # ------------------------------------------------------------------

    def _inserir_consulta(self, session: Session, documento: TessDocumento) -> Consulta:
        dados = documento.consulta
        consulta = Consulta(
            operador=texto(dados.operador, 100) or OPERADOR_PADRAO,
            data_hora=parse_data(dados.data_hora) or datetime.now(),
            produto=texto(dados.produto, 200) or PRODUTO_PADRAO,
            protocolo=texto(dados.protocolo, 100) or PROTOCOLO_PADRAO,
        )
        session.add(consulta)
        session.flush()
        log_database_query(logger, "insert", "consulta", {"id": consulta.id}, 1)
        return consulta

    def _upsert_empresa(
        self, session: Session, registro: RegistroConsolidado, documento: TessDocumento, consulta_id: int
    ) -> Empresa:
        campos = {
            "inscricao_estadual": texto(registro.inscricao_estadual, 50),
            "inscricao_suframa": texto(registro.inscricao_suframa, 50),
            "razao_social": texto(registro.razao_social, 300),
            "nome_fantasia": texto(registro.nome_fantasia, 300),
            "situacao_cnpj": texto(registro.situacao, 100),
            "atualizacao": parse_data(documento.empresa.atualizacao),
            "fundacao": parse_somente_data(registro.data_abertura),
            "natureza_juridica": texto(registro.natureza_juridica, 200),
            "porte": texto(registro.porte, 100),
            "capital_social": parse_moeda(registro.capital_social),
            "atividade_principal": texto(registro.atividade_principal),
            "telefone": texto(registro.telefones[0], 50) if registro.telefones else None,
            "email": texto(registro.emails[0], 200) if registro.emails else None,
            "endereco_completo": texto(registro.endereco_completo),
            "id_consulta": consulta_id,
        }

        empresa = session.query(Empresa).filter(Empresa.cnpj == registro.cnpj).first()
        if empresa:
            # dados novos ausentes não apagam o que já foi gravado
            _atualizar(empresa, campos, somente_preenchidos=True)
            operacao = "update"
        else:
            empresa = Empresa(cnpj=registro.cnpj)
            _atualizar(empresa, campos)
            session.add(empresa)
            operacao = "insert"

        if not empresa.razao_social:
            empresa.razao_social = RAZAO_SOCIAL_PADRAO

        session.flush()
        log_database_query(logger, operacao, "empresa", {"cnpj": registro.cnpj, "id": empresa.id}, 1)
        return empresa

    def _inserir_consulta_empresa(
        self,
        session: Session,
        consulta_id: int,
        empresa_id: int,
        registro: RegistroConsolidado,
        arquivo_pdf: Optional[str],
        tess_file_id: Optional[str],
        tess_creditos: Optional[float],
        cnpja_unidades: Optional[int],
    ) -> ConsultaEmpresa:
        vinculo = ConsultaEmpresa(
            consulta_id=consulta_id,
            empresa_id=empresa_id,
            arquivo_pdf=texto(arquivo_pdf, 500),
            tess_file_id=texto(tess_file_id, 100),
            tess_resposta=registro.resposta_tess,
            tess_creditos=tess_creditos,
            cnpja_resposta=registro.resposta_cnpja,
            cnpja_unidades=cnpja_unidades,
        )
        session.add(vinculo)
        session.flush()
        log_database_query(logger, "insert", "consulta_empresa", {"empresa_id": empresa_id}, 1)
        return vinculo

    # ------------------------------------------------------------------
    # Endereço e contato
    # ------------------------------------------------------------------

    def _salvar_endereco(self, session: Session, empresa_id: int, registro: RegistroConsolidado):
        partes = registro.endereco
        if vazio(partes.logradouro) and vazio(partes.cidade):
            log_database_query(logger, "skip", "endereco", {"motivo": "sem logradouro e cidade"})
            return None

        campos = {
            "logradouro": texto(partes.logradouro, 300),
            "numero": texto(partes.numero, 30),
            "complemento": texto(partes.complemento, 200),
            "bairro": texto(partes.bairro, 150),
            "cidade": texto(partes.cidade, 150),
            "estado": normalizar_uf(partes.estado),
            "cep": texto(partes.cep, 10),
            "latitude": parse_float(partes.latitude, 0),
            "longitude": parse_float(partes.longitude, 0),
        }

        endereco = (
            session.query(Endereco)
            .filter(Endereco.empresa_id == empresa_id)
            .order_by(Endereco.id.desc())
            .first()
        )
        if endereco:
            _atualizar(endereco, campos)
            operacao = "update"
        else:
            endereco = Endereco(empresa_id=empresa_id, **campos)
            session.add(endereco)
            operacao = "insert"

        session.flush()
        log_database_query(logger, operacao, "endereco", {"empresa_id": empresa_id}, 1)
        return endereco

    def _salvar_contato(
        self, session: Session, empresa_id: int, registro: RegistroConsolidado, documento: TessDocumento
    ):
        fixos = list(documento.empresa.telefones.fixos)
        celulares = list(documento.empresa.telefones.celulares)
        if not fixos and not celulares:
            fixos = list(registro.telefones)

        contato = session.query(DadosContato).filter(DadosContato.empresa_id == empresa_id).first()
        operacao = "update" if contato else "insert"
        if not contato:
            contato = DadosContato(empresa_id=empresa_id)
            session.add(contato)

        contato.telefones_fixos = fixos
        contato.telefones_celulares = celulares
        contato.emails = list(registro.emails)

        session.flush()
        log_database_query(logger, operacao, "dados_contato", {"empresa_id": empresa_id}, 1)
        return contato

    # ------------------------------------------------------------------
    # Seções opcionais (upsert da última linha)
    # ------------------------------------------------------------------

    def _upsert_secao(self, session: Session, modelo, empresa_id: int, campos: Dict[str, Any], tabela: str):
        if _tudo_vazio(list(campos.values())):
            log_database_query(logger, "skip", tabela, {"motivo": "seção vazia"})
            return None

        linha = (
            session.query(modelo)
            .filter(modelo.empresa_id == empresa_id)
            .order_by(modelo.id.desc())
            .first()
        )
        operacao = "update" if linha else "insert"
        if not linha:
            linha = modelo(empresa_id=empresa_id)
            session.add(linha)
        _atualizar(linha, campos)

        session.flush()
        log_database_query(logger, operacao, tabela, {"empresa_id": empresa_id}, 1)
        return linha

    def _salvar_ocorrencias(self, session: Session, empresa_id: int, documento: TessDocumento):
        dados = documento.ocorrencias
        campos = {campo: int_flag(valor) for campo, valor in dados.model_dump().items()}
        return self._upsert_secao(session, Ocorrencias, empresa_id, campos, "ocorrencias")

    def _salvar_historico(self, session: Session, empresa_id: int, documento: TessDocumento):
        dados = documento.historico_pagamento_positivo
        cheque = int_flag(dados.uso_cheque_especial)
        campos = {
            "compromissos_ativos": texto(dados.compromissos_ativos, 100),
            "contratos_ativos": parse_int(dados.contratos_ativos),
            "credores": parse_int(dados.credores),
            "parcelas_a_vencer_percentual": parse_float(dados.parcelas.a_vencer_percentual),
            "parcelas_pagas_percentual": parse_float(dados.parcelas.pagas_percentual),
            "parcelas_abertas_percentual": parse_float(dados.parcelas.abertas_percentual),
            "contratos_pagos": texto(dados.contratos_pagos, 100),
            "contratos_abertos": texto(dados.contratos_abertos, 100),
            "uso_cheque_especial": None if cheque is None else cheque == 1,
        }
        return self._upsert_secao(
            session, HistoricoPagamentoPositivo, empresa_id, campos, "historico_pagamento_positivo"
        )

    def _salvar_score(self, session: Session, empresa_id: int, documento: TessDocumento):
        dados = documento.score_credito
        campos = {
            "score": parse_int(dados.score),
            "risco": texto(dados.risco, 100),
            "probabilidade_inadimplencia": parse_float(dados.probabilidade_inadimplencia),
            "limite_credito_valor": parse_moeda(documento.limite_credito.valor),
            "gasto_financeiro_estimado_valor": parse_moeda(documento.gasto_financeiro_estimado.valor),
        }
        return self._upsert_secao(session, ScoreCredito, empresa_id, campos, "score_credito")

    def _salvar_scr(self, session: Session, empresa_id: int, documento: TessDocumento):
        dados = documento.scr
        campos = {
            "atualizacao": parse_somente_data(dados.atualizacao),
            "quantidade_operacoes": parse_int(dados.quantidade_operacoes),
            "inicio_relacionamento": parse_somente_data(dados.inicio_relacionamento),
            "valor_contratado": texto(dados.valor_contratado, 100),
            "instituicoes": parse_int(dados.instituicoes),
            "carteira_ativa_total": texto(dados.carteira_ativa_total, 100),
            "vencimento_ultima_parcela": texto(dados.vencimento_ultima_parcela, 100),
            "garantias_quantidade_maxima": parse_int(dados.garantias.quantidade_maxima),
        }
        scr = self._upsert_secao(session, Scr, empresa_id, campos, "scr")
        if scr is None:
            return None

        removidos = session.query(TipoGarantia).filter(TipoGarantia.id_scr == scr.id).delete(synchronize_session=False)
        tipos = [t for t in (texto(tipo, 200) for tipo in dados.garantias.tipos) if t]
        for tipo in tipos:
            session.add(TipoGarantia(id_scr=scr.id, tipo_garantia=tipo))
        session.flush()
        log_database_query(logger, "replace", "tipos_garantias", {"id_scr": scr.id, "removidos": removidos}, len(tipos))
        return scr

    # ------------------------------------------------------------------
    # Coleções apagadas e recriadas
    # ------------------------------------------------------------------

    def _substituir_socios(self, session: Session, empresa_id: int, documento: TessDocumento) -> int:
        removidos = session.query(Socio).filter(Socio.empresa_id == empresa_id).delete(synchronize_session=False)

        inseridos = 0
        for socio in documento.controle_societario:
            if vazio(socio.cpf) and vazio(socio.nome):
                continue
            documento_socio = somente_digitos(socio.cpf)
            valor = parse_moeda(socio.participacao.valor)
            session.add(Socio(
                empresa_id=empresa_id,
                cpf=texto(socio.cpf, 20),
                nome=texto(socio.nome, 300),
                tipo_pessoa=("F" if len(documento_socio) == 11 else "J") if documento_socio else None,
                entrada=parse_somente_data(socio.entrada),
                participacao=valor,
                valor_participacao=valor,
                percentual_participacao=parse_float(socio.participacao.percentual),
                cargo=texto(socio.cargo, 150),
            ))
            inseridos += 1

        session.flush()
        log_database_query(logger, "replace", "socios", {"empresa_id": empresa_id, "removidos": removidos}, inseridos)
        return inseridos

    def _substituir_quadro(self, session: Session, empresa_id: int, documento: TessDocumento) -> int:
        removidos = (
            session.query(QuadroAdministrativo)
            .filter(QuadroAdministrativo.empresa_id == empresa_id)
            .delete(synchronize_session=False)
        )

        inseridos = 0
        for administrador in documento.quadro_administrativo:
            if vazio(administrador.cpf) and vazio(administrador.nome):
                continue
            session.add(QuadroAdministrativo(
                empresa_id=empresa_id,
                cpf=texto(administrador.cpf, 20),
                nome=texto(administrador.nome, 300),
                cargo=texto(administrador.cargo, 150),
                eleito_em=parse_somente_data(administrador.eleito_em),
            ))
            inseridos += 1

        session.flush()
        log_database_query(
            logger, "replace", "quadro_administrativo", {"empresa_id": empresa_id, "removidos": removidos}, inseridos
        )
        return inseridos

    def _inserir_consultas_realizadas(
        self, session: Session, empresa_id: int, consulta_id: int, documento: TessDocumento
    ) -> int:
        inseridos = 0
        for item in documento.consultas.registros:
            if _tudo_vazio([item.data_hora, item.associado, item.cidade, item.origem]):
                continue
            session.add(ConsultaRealizada(
                empresa_id=empresa_id,
                id_consulta=consulta_id,
                data_hora=parse_data(item.data_hora),
                associado=texto(item.associado, 300),
                cidade=texto(item.cidade, 150),
                origem=texto(item.origem, 150),
            ))
            inseridos += 1

        session.flush()
        log_database_query(logger, "insert", "consultas_realizadas", {"empresa_id": empresa_id}, inseridos)
        return inseridos

    def _upsert_client_registration(self, session: Session, empresa: Empresa) -> ClientRegistration:
        registro = session.query(ClientRegistration).filter(ClientRegistration.cnpj == empresa.cnpj).first()
        operacao = "update" if registro else "insert"
        if not registro:
            registro = ClientRegistration(cnpj=empresa.cnpj)
            session.add(registro)

        registro.empresa_id = empresa.id
        registro.razao_social = empresa.razao_social
        registro.status = RegistrationStatus.CONSULTADO.value

        session.flush()
        log_database_query(logger, operacao, "client_registrations", {"cnpj": empresa.cnpj}, 1)
        return registro

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------

    def salvar(
        self,
        registro: RegistroConsolidado,
        documento: Optional[TessDocumento] = None,
        arquivo_pdf: Optional[str] = None,
        tess_file_id: Optional[str] = None,
        tess_creditos: Optional[float] = None,
        cnpja_unidades: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Grava o registro consolidado e as coleções numa única transação.

        Returns:
            Dict com empresa_id, consulta_id e consulta_empresa_id

        Raises:
            PersistenceError: qualquer falha; nada do CNPJ fica gravado
        """
        documento = documento or TessDocumento()
        cnpj = registro.cnpj
        session = self.session_factory()

        try:
            consulta = self._etapa(cnpj, "consulta", lambda: self._inserir_consulta(session, documento))
            empresa = self._etapa(
                cnpj, "empresa", lambda: self._upsert_empresa(session, registro, documento, consulta.id)
            )
            vinculo = self._etapa(cnpj, "consulta_empresa", lambda: self._inserir_consulta_empresa(
                session, consulta.id, empresa.id, registro, arquivo_pdf, tess_file_id, tess_creditos, cnpja_unidades
            ))

            self._etapa(cnpj, "endereco", lambda: self._salvar_endereco(session, empresa.id, registro))
            self._etapa(cnpj, "dados_contato", lambda: self._salvar_contato(session, empresa.id, registro, documento))
            self._etapa(cnpj, "ocorrencias", lambda: self._salvar_ocorrencias(session, empresa.id, documento))
            self._etapa(cnpj, "socios", lambda: self._substituir_socios(session, empresa.id, documento))
            self._etapa(
                cnpj, "quadro_administrativo", lambda: self._substituir_quadro(session, empresa.id, documento)
            )
            self._etapa(
                cnpj, "historico_pagamento_positivo", lambda: self._salvar_historico(session, empresa.id, documento)
            )
            self._etapa(cnpj, "score_credito", lambda: self._salvar_score(session, empresa.id, documento))
            self._etapa(cnpj, "scr", lambda: self._salvar_scr(session, empresa.id, documento))
            self._etapa(cnpj, "consultas_realizadas", lambda: self._inserir_consultas_realizadas(
                session, empresa.id, consulta.id, documento
            ))
            self._etapa(cnpj, "client_registrations", lambda: self._upsert_client_registration(session, empresa))

            session.commit()
            logger.info(f"[DB] Dados do CNPJ {cnpj} gravados (empresa {empresa.id}, consulta {consulta.id})")
            return {
                "empresa_id": empresa.id,
                "consulta_id": consulta.id,
                "consulta_empresa_id": vinculo.id,
            }

        except PersistenceError:
            session.rollback()
            logger.error(f"[DB] Transação do CNPJ {cnpj} desfeita")
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DB] Erro ao confirmar transação do CNPJ {cnpj}: {e}")
            raise PersistenceError(f"Falha ao confirmar transação: {e}", "DB") from e
        finally:
            session.close()

    def salvar_resultado_atak(self, cnpj: str, resultado: StageResult) -> None:
        """
        Registra o resultado do Atak em client_registrations.
        Transação própria: nunca desfaz os dados da empresa.
        """
        session = self.session_factory()
        try:
            registro = session.query(ClientRegistration).filter(ClientRegistration.cnpj == cnpj).first()
            if not registro:
                registro = ClientRegistration(cnpj=cnpj)
                session.add(registro)

            if resultado.success:
                dados = resultado.data or {}
                registro.status = (
                    RegistrationStatus.JA_CADASTRADO_ATAK.value
                    if dados.get("ja_cadastrado")
                    else RegistrationStatus.CADASTRADO_ATAK.value
                )
                registro.atak_cliente_id = dados.get("cliente_id")
                registro.atak_resposta_json = json.dumps(dados.get("resposta"), ensure_ascii=False, default=str)
                registro.atak_data_cadastro = datetime.now()
                registro.atak_erro = None
            else:
                registro.status = RegistrationStatus.ERRO_ATAK.value
                registro.atak_erro = resultado.error

            session.commit()
            log_database_query(logger, "update", "client_registrations", {"cnpj": cnpj, "status": registro.status}, 1)

        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DB] Falha ao gravar resultado do Atak para {cnpj}: {e}")
            raise PersistenceError(f"Falha ao gravar resultado do Atak: {e}", "DB") from e
        finally:
            session.close()
