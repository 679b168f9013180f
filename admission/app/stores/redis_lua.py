"""Redis Lua scripts for the shared counter store.

Scripts run atomically on the Redis server, so the increment and the
expiry bookkeeping can never interleave with another instance's request.
"""

# Atomic increment-with-expiry for one fixed window.
# KEYS[1]: counter key
# ARGV[1]: window length in milliseconds
# ARGV[2]: effective max for this request (-1 when unknown)
# ARGV[3]: "1" to restart the window while the key keeps exceeding
# Returns {current, ttl_ms}
INCREMENT_SCRIPT = """
    local key = KEYS[1]
    local time_window = tonumber(ARGV[1])
    local max = tonumber(ARGV[2])
    local continue_exceeding = ARGV[3] == '1'

    local current = redis.call('INCR', key)

    -- First hit of a window, or a client still hammering while over the limit
    if current == 1 or (continue_exceeding and max >= 0 and current > max) then
        redis.call('PEXPIRE', key, time_window)
        return {current, time_window}
    end

    local ttl = redis.call('PTTL', key)
    -- Counter without expiry (e.g. PEXPIRE lost on failover): start a window
    if ttl < 0 then
        redis.call('PEXPIRE', key, time_window)
        ttl = time_window
    end
    return {current, ttl}
"""
