"""
Oracle 指标源实现 (Oracle Metrics Source Implementation)

基于 python-oracledb 异步连接池执行只读监控查询和管理命令。
连接池在首次使用时才创建，数据库不可达不会阻止应用启动。
连接类错误 → SourceUnavailable；查询错误 → QueryFailed；命令错误 → CommandFailed。

Runs read-only monitoring queries and admin statements through a python-oracledb
async pool, created lazily on first use.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

import oracledb

from dbdash.core.config import Settings
from dbdash.core.exceptions import CommandFailed, QueryFailed, SourceUnavailable
from dbdash.services.source import (
    CommandExecutor,
    MetricsSource,
    map_active_session,
    map_alert_log_entry,
    map_instance_info,
    map_lock,
    map_parameter,
    map_session_info,
    map_system_stat,
    map_tablespace,
    map_top_sql,
    map_wait_stat,
    parse_db_time,
)

logger = logging.getLogger(__name__)

SYSTEM_STATS_SQL = """
    SELECT name AS metric_name,
           value,
           CASE
             WHEN name IN ('user commits', 'user rollbacks', 'physical reads', 'physical writes',
                           'sorts (memory)', 'sorts (disk)') THEN 'Per Second'
             WHEN name = 'redo size' THEN 'Bytes Per Second'
             ELSE ''
           END AS metric_unit
      FROM v$sysstat
     WHERE name IN ('user commits', 'user rollbacks', 'physical reads', 'physical writes',
                    'redo size', 'sorts (memory)', 'sorts (disk)')
"""

SESSION_INFO_SQL = """
    SELECT COUNT(*) AS total_sessions,
           SUM(CASE WHEN status = 'ACTIVE' THEN 1 ELSE 0 END) AS active_sessions,
           SUM(CASE WHEN username IS NOT NULL THEN 1 ELSE 0 END) AS user_sessions,
           SUM(CASE WHEN type = 'BACKGROUND' THEN 1 ELSE 0 END) AS background_sessions
      FROM v$session
"""

WAIT_EVENTS_SQL = """
    SELECT wait_class,
           total_waits,
           ROUND(time_waited / 100, 2) AS time_waited_seconds,
           ROUND(time_waited / 100 / NULLIF(total_waits, 0), 2) AS average_wait_seconds
      FROM v$system_wait_class
     WHERE wait_class != 'Idle'
     ORDER BY time_waited DESC
"""

INSTANCE_INFO_SQL = """
    SELECT instance_name, host_name, version, startup_time, status, database_status
      FROM v$instance
"""

TABLESPACE_SQL = """
    SELECT tablespace_name,
           ROUND(total_mb, 2) AS total_mb,
           ROUND(used_mb, 2) AS used_mb,
           ROUND(free_mb, 2) AS free_mb,
           ROUND((used_mb / total_mb) * 100, 2) AS used_pct,
           autoextensible,
           status
      FROM (
        SELECT df.tablespace_name,
               SUM(df.bytes) / 1024 / 1024 AS total_mb,
               SUM(df.bytes - NVL(fs.bytes, 0)) / 1024 / 1024 AS used_mb,
               NVL(SUM(fs.bytes), 0) / 1024 / 1024 AS free_mb,
               MAX(df.autoextensible) AS autoextensible,
               MAX(df.status) AS status
          FROM dba_data_files df
          LEFT JOIN (SELECT tablespace_name, file_id, SUM(bytes) AS bytes
                       FROM dba_free_space
                      GROUP BY tablespace_name, file_id) fs
            ON df.tablespace_name = fs.tablespace_name AND df.file_id = fs.file_id
         GROUP BY df.tablespace_name
        UNION ALL
        SELECT tf.tablespace_name,
               SUM(tf.bytes) / 1024 / 1024,
               (SUM(tf.bytes) - NVL(SUM(fs.bytes_free), 0)) / 1024 / 1024,
               NVL(SUM(fs.bytes_free), 0) / 1024 / 1024,
               'YES',
               'ONLINE'
          FROM dba_temp_files tf
          LEFT JOIN v$temp_space_header fs ON tf.tablespace_name = fs.tablespace_name
         GROUP BY tf.tablespace_name
      )
     ORDER BY used_pct DESC
"""

ACTIVE_SESSIONS_SQL = """
    SELECT s.sid, s.serial#, s.username, s.status, s.machine, s.program,
           s.last_call_et AS last_call_seconds, s.sql_id, s.event, s.wait_class,
           s.seconds_in_wait, s.blocking_session, q.sql_text
      FROM v$session s
      LEFT JOIN v$sql q ON s.sql_id = q.sql_id AND s.sql_child_number = q.child_number
     WHERE s.type = 'USER' AND s.status = 'ACTIVE'
     ORDER BY s.last_call_et DESC
"""

TOP_SQL_SQL = """
    SELECT sql_id,
           SUBSTR(sql_text, 1, 100) AS sql_text,
           executions,
           elapsed_time / 1000000 AS elapsed_time_seconds,
           cpu_time / 1000000 AS cpu_time_seconds,
           buffer_gets,
           disk_reads,
           rows_processed
      FROM v$sqlstats
     WHERE executions > 0 AND elapsed_time > 0
     ORDER BY elapsed_time DESC
     FETCH FIRST 20 ROWS ONLY
"""

LOCKS_SQL = """
    SELECT lo.session_id AS sid, s.serial#, s.username, o.owner, o.object_name, o.object_type,
           lo.locked_mode,
           DECODE(lo.locked_mode, 0, 'None', 1, 'Null', 2, 'Row Share (SS)', 3, 'Row Exclusive (SX)',
                  4, 'Share (S)', 5, 'Share Row Exclusive (SSX)', 6, 'Exclusive (X)', 'Unknown') AS lock_mode_desc
      FROM v$locked_object lo
      JOIN dba_objects o ON lo.object_id = o.object_id
      JOIN v$session s ON lo.session_id = s.sid
     ORDER BY lo.session_id
"""

PARAMETERS_SQL = r"""
    SELECT name, value, display_value, isdefault, description
      FROM v$parameter
     WHERE name NOT LIKE '\_%' ESCAPE '\'
     ORDER BY name
"""

ALERT_LOG_SQL = """
    SELECT message_text, originating_timestamp AS message_time, message_type, message_level
      FROM v$diag_alert_ext
     WHERE originating_timestamp > SYSTIMESTAMP - INTERVAL '1' DAY
     ORDER BY originating_timestamp DESC
     FETCH FIRST 50 ROWS ONLY
"""

LAST_BACKUP_SQL = """
    SELECT MAX(end_time) AS last_backup
      FROM v$rman_backup_job_details
     WHERE status = 'COMPLETED'
"""


class OraclePool:
    """延迟创建的 oracledb 异步连接池，被指标源和命令执行器共享。"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pool: Optional[oracledb.AsyncConnectionPool] = None
        self._lock = asyncio.Lock()

    async def get(self) -> oracledb.AsyncConnectionPool:
        async with self._lock:
            if self._pool is None:
                s = self.settings
                try:
                    self._pool = oracledb.create_pool_async(
                        user=s.oracle_user,
                        password=s.oracle_password,
                        dsn=s.oracle_dsn,
                        min=s.oracle_pool_min,
                        max=s.oracle_pool_max,
                        increment=s.oracle_pool_increment,
                    )
                except oracledb.Error as e:
                    raise SourceUnavailable("Cannot create Oracle connection pool", str(e)) from e
                logger.info("Oracle connection pool created for %s", s.oracle_dsn)
            return self._pool

    async def fetch_all(self, sql: str, binds: Optional[dict] = None) -> list[dict[str, Any]]:
        pool = await self.get()
        try:
            async with pool.acquire() as connection:
                with connection.cursor() as cursor:
                    await cursor.execute(sql, binds or {})
                    columns = [d[0] for d in cursor.description or ()]
                    rows = await cursor.fetchall()
        except (oracledb.InterfaceError, oracledb.OperationalError) as e:
            raise SourceUnavailable("Oracle database unreachable", str(e)) from e
        except oracledb.Error as e:
            raise QueryFailed("Oracle query failed", str(e)) from e
        return [dict(zip(columns, row)) for row in rows]

    async def execute(self, sql: str) -> None:
        pool = await self.get()
        try:
            async with pool.acquire() as connection:
                with connection.cursor() as cursor:
                    await cursor.execute(sql)
        except (oracledb.InterfaceError, oracledb.OperationalError) as e:
            raise SourceUnavailable("Oracle database unreachable", str(e)) from e
        except oracledb.Error as e:
            raise CommandFailed(f"Command failed: {sql}", str(e)) from e

    async def close(self) -> None:
        async with self._lock:
            if self._pool is not None:
                try:
                    await self._pool.close()
                    logger.info("Oracle connection pool closed")
                except oracledb.Error as e:
                    logger.error("Error closing Oracle pool: %s", e)
                self._pool = None


class OracleMetricsSource(MetricsSource):
    """Oracle 只读指标源。"""

    def __init__(self, pool: OraclePool):
        self.pool = pool

    async def _one(self, sql: str) -> Optional[dict[str, Any]]:
        rows = await self.pool.fetch_all(sql)
        return rows[0] if rows else None

    async def get_system_stats(self):
        return [map_system_stat(r) for r in await self.pool.fetch_all(SYSTEM_STATS_SQL)]

    async def get_session_info(self):
        return map_session_info(await self._one(SESSION_INFO_SQL))

    async def get_wait_events(self):
        return [map_wait_stat(r) for r in await self.pool.fetch_all(WAIT_EVENTS_SQL)]

    async def get_instance_info(self):
        return map_instance_info(await self._one(INSTANCE_INFO_SQL))

    async def get_tablespace_usage(self):
        return [map_tablespace(r) for r in await self.pool.fetch_all(TABLESPACE_SQL)]

    async def get_active_sessions(self):
        return [map_active_session(r) for r in await self.pool.fetch_all(ACTIVE_SESSIONS_SQL)]

    async def get_top_sql(self):
        return [map_top_sql(r) for r in await self.pool.fetch_all(TOP_SQL_SQL)]

    async def get_lock_information(self):
        return [map_lock(r) for r in await self.pool.fetch_all(LOCKS_SQL)]

    async def get_database_parameters(self):
        return [map_parameter(r) for r in await self.pool.fetch_all(PARAMETERS_SQL)]

    async def get_alert_log(self):
        return [map_alert_log_entry(r) for r in await self.pool.fetch_all(ALERT_LOG_SQL)]

    async def get_last_backup_time(self) -> Optional[datetime]:
        row = await self._one(LAST_BACKUP_SQL)
        return parse_db_time((row or {}).get("LAST_BACKUP"))

    async def close(self) -> None:
        await self.pool.close()


class OracleCommandExecutor(CommandExecutor):
    """Oracle 管理命令执行器。"""

    def __init__(self, pool: OraclePool):
        self.pool = pool

    async def run_statement(self, sql: str) -> None:
        logger.info("Executing administrative statement: %s", sql)
        await self.pool.execute(sql)
